import json

from bookpos.errors import NetworkFailure, NotFound
from bookpos.logs import json_log


def _records(capsys):
    return [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.strip()]


def test_json_log_records_error_class_and_upstream_status(capsys):
    json_log("warning", "sync.push.failed", exc=NetworkFailure("http 503", status=503), transaction_id="t1")
    (rec,) = _records(capsys)
    assert rec["event"] == "sync.push.failed"
    assert rec["error"] == "http 503"
    assert rec["error_type"] == "NetworkFailure"
    assert rec["upstream_status"] == 503
    assert rec["transaction_id"] == "t1"


def test_json_log_without_exception(capsys):
    json_log("info", "sale.recorded", total=1)
    (rec,) = _records(capsys)
    assert rec["level"] == "info"
    assert "error_type" not in rec


def test_not_found_has_no_upstream_status(capsys):
    json_log("info", "x", exc=NotFound("product", "p9"))
    (rec,) = _records(capsys)
    assert rec["error_type"] == "NotFound"
    assert "upstream_status" not in rec
