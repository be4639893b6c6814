import unittest

from docgraph.parsers.session_logs import parse_session_log_entries


class SessionLogParserTests(unittest.TestCase):
    def test_entries_keep_document_order_and_split_fields(self) -> None:
        html = """
        <html><body>
          <div class="log-entry">
            <span class="timestamp">10:00</span>
            <h3>Start</h3>
            <div class="content">Did   things</div>
          </div>
          <div class="log-entry">
            <span class="timestamp">11:30</span>
            <h3>Next</h3>
            Raw text here
          </div>
        </body></html>
        """
        entries = parse_session_log_entries(html)

        self.assertEqual(len(entries), 2)
        self.assertEqual(entries[0].timestamp, "10:00")
        self.assertEqual(entries[0].title, "Start")
        self.assertEqual(entries[0].text, "Did things")
        self.assertEqual(entries[1].timestamp, "11:30")
        self.assertEqual(entries[1].title, "Next")
        self.assertEqual(entries[1].text, "Raw text here")

    def test_blank_entries_are_skipped(self) -> None:
        html = '<div class="log-entry"><span class="timestamp">09:00</span></div>'

        self.assertEqual(parse_session_log_entries(html), [])

    def test_no_entries(self) -> None:
        self.assertEqual(parse_session_log_entries("<p>nothing to see</p>"), [])
        self.assertEqual(parse_session_log_entries(""), [])


if __name__ == "__main__":
    unittest.main()
