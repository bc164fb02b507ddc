from django.db import OperationalError
from django.test import SimpleTestCase, TestCase
from rest_framework.exceptions import NotFound

from apps.common.csvutils import csv_chunks, stream_csv
from apps.common.exceptions import api_exception_handler


class ClosableRows:
    def __init__(self, rows, fail_after=None):
        self.rows = rows
        self.fail_after = fail_after
        self.closed = False

    def __iter__(self):
        for index, row in enumerate(self.rows):
            if self.fail_after is not None and index == self.fail_after:
                raise OperationalError("connection lost")
            yield row

    def close(self):
        self.closed = True


class CsvChunkTests(SimpleTestCase):
    def test_header_only_when_no_rows(self):
        self.assertEqual(list(csv_chunks(["A", "B"], iter([]), flush_rows=10)), ["A,B\n"])

    def test_quotes_fields_that_need_it(self):
        body = "".join(csv_chunks(["Name"], iter([['say "hi", then\nleave'], ["plain"]]), flush_rows=10))
        self.assertEqual(body, 'Name\n"say ""hi"", then\nleave"\nplain\n')

    def test_flushes_every_n_rows(self):
        chunks = list(csv_chunks(["N"], iter([[1], [2], [3], [4]]), flush_rows=2))
        self.assertEqual(chunks, ["N\n1\n", "2\n3\n", "4\n"])

    def test_mid_stream_failure_is_logged_and_reraised(self):
        rows = ClosableRows([[1], [2], [3]], fail_after=2)
        chunks = csv_chunks(["N"], rows, flush_rows=1)
        self.assertEqual(next(chunks), "N\n1\n")
        with self.assertLogs("apps.common.csvutils", level="ERROR"):
            with self.assertRaises(OperationalError):
                list(chunks)
        self.assertTrue(rows.closed)


# response.close() fires request_finished, whose handler touches the connection.
class StreamCsvResponseTests(TestCase):
    def test_closing_the_response_closes_the_row_source(self):
        rows = ClosableRows([[1], [2], [3]])
        response = stream_csv(["N"], rows, "out.csv", flush_rows=1)
        self.assertEqual(next(iter(response)), b"N\n1\n")
        response.close()
        self.assertTrue(rows.closed)

    def test_closing_before_iteration_releases_everything(self):
        rows = ClosableRows([[1]])
        released = []
        response = stream_csv(["N"], rows, "out.csv", on_close=lambda: released.append(True))
        response.close()
        self.assertTrue(rows.closed)
        self.assertEqual(released, [True])

    def test_headers(self):
        response = stream_csv(["N"], iter([]), "out.csv")
        self.assertEqual(response["Content-Type"], "text/csv; charset=utf-8")
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="out.csv"')


class ExceptionHandlerTests(SimpleTestCase):
    def test_store_errors_become_service_unavailable(self):
        response = api_exception_handler(OperationalError("down"), {})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["code"], "store_unavailable")
        self.assertFalse(response.data["success"])

    def test_api_errors_use_the_error_envelope(self):
        response = api_exception_handler(NotFound(), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")
        self.assertEqual(response.data["fields"], {})

    def test_unknown_errors_are_left_to_django(self):
        self.assertIsNone(api_exception_handler(KeyError("boom"), {}))
