import unittest
from unittest.mock import patch

from docgraph import config
from docgraph.observability import otel


class ObservabilityDisabledTests(unittest.TestCase):
    def test_helpers_are_no_ops_when_disabled(self) -> None:
        with patch.object(config, "OTEL_ENABLED", False), patch.object(otel, "_initialized", False):
            otel.initialize(None)

            self.assertFalse(otel.is_enabled())
            with otel.start_span("docgraph.test", {"k": "v"}) as span:
                self.assertIsNone(span)
            otel.record_ingestion("document", "success", 1.5)
            otel.record_parser_failure("html")
            otel.record_search("fulltext", "success", 2.0)
            otel.shutdown(None)

    def test_otlp_endpoint_normalization(self) -> None:
        self.assertEqual(
            otel._normalize_otlp_endpoint("http://collector:4318", "/v1/traces"),
            "http://collector:4318/v1/traces",
        )
        self.assertEqual(
            otel._normalize_otlp_endpoint("http://collector:4318/v1/", "/v1/metrics"),
            "http://collector:4318/v1/metrics",
        )
        self.assertEqual(otel._normalize_otlp_endpoint("", "/v1/traces"), "")


if __name__ == "__main__":
    unittest.main()
