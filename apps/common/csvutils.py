import csv
import logging

from django.http import StreamingHttpResponse

logger = logging.getLogger(__name__)


class Echo:  # csv.writer target that hands each encoded row back
    def write(self, value):
        return value


def csv_chunks(header, rows, flush_rows):
    """Yield CSV text in chunks of ``flush_rows`` rows, header first.

    Once the first chunk has left, the HTTP status is committed, so a failure is
    logged and re-raised to abort the connection instead of ending the body cleanly.
    Closing the generator closes ``rows`` too.
    """
    writer = csv.writer(Echo(), lineterminator="\n")
    pending = [writer.writerow(header)]
    try:
        for row in rows:
            pending.append(writer.writerow(row))
            if len(pending) >= flush_rows:
                yield "".join(pending)
                pending = []
        if pending:
            yield "".join(pending)
    except Exception:
        logger.exception("CSV stream aborted after the response was committed")
        raise
    finally:
        close = getattr(rows, "close", None)
        if close is not None:
            close()


class CsvBody:
    """Streaming body whose ``close()`` releases the row source even if iteration never started."""

    def __init__(self, header, rows, flush_rows, on_close=None):
        self.rows = rows
        self.on_close = on_close
        self.chunks = csv_chunks(header, rows, flush_rows)

    def __iter__(self):
        return self.chunks

    def close(self):
        self.chunks.close()
        for close in (getattr(self.rows, "close", None), self.on_close):
            if close is not None:
                close()


def stream_csv(header, rows, filename, flush_rows=500, on_close=None):
    # StreamingHttpResponse registers CsvBody.close as a resource closer.
    response = StreamingHttpResponse(
        CsvBody(header, rows, max(flush_rows, 1), on_close=on_close),
        content_type="text/csv; charset=utf-8",
    )
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
