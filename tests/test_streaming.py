import json
from datetime import datetime, timezone

import pytest

from mapsjobs.streaming import StreamEvent, StreamHub, format_sse_event

JOB_ID = "test-job-123"


def test_heartbeat_json_fields():
    event = StreamEvent(type="HEARTBEAT", job_id=JOB_ID, data={"ping": "pong"})
    text = event.to_json()
    assert '"type":"HEARTBEAT"' in text
    assert '"job_id":"test-job-123"' in text
    assert '"ping":"pong"' in text


def test_event_json_shape():
    text = StreamEvent(type="COMPANY_SCRAPED", job_id="test-job", data={"test": "data"}).to_json()
    assert text.startswith("{") and text.endswith("}")
    for key in ('"type"', '"timestamp"', '"job_id"', '"data"'):
        assert key in text


def test_event_roundtrip():
    event = StreamEvent(
        type="COMPANY_SCRAPED",
        job_id=JOB_ID,
        data={"cid": "test-cid", "status": "new"},
        timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    back = StreamEvent.from_json(event.to_json())
    assert back == event


def test_batch_start_with_null_value():
    text = StreamEvent(type="BATCH_START", job_id=JOB_ID, data={"keyword": "test", "total_expected": None}).to_json()
    assert "BATCH_START" in text and JOB_ID in text
    assert json.loads(text)["data"]["total_expected"] is None


def test_format_sse_event():
    event = StreamEvent(type="BATCH_END", job_id="j", data={"total_scraped": 10})
    frame = format_sse_event(event)
    assert frame == f"id: j\nevent: BATCH_END\ndata: {event.to_json()}\n\n"


def test_broadcast_reaches_registered_client():
    hub = StreamHub()
    client = hub.register(JOB_ID)
    event = StreamEvent(type="COMPANY_SCRAPED", job_id=JOB_ID)
    hub.broadcast(JOB_ID, event)
    assert client.get_nowait() == event
    assert hub.client_count(JOB_ID) == 1


@pytest.mark.parametrize("etype", ["BATCH_START", "COMPANY_SCRAPED", "HEARTBEAT", "BATCH_END"])
def test_broadcast_without_clients_keeps_history(etype):
    hub = StreamHub()
    hub.broadcast(JOB_ID, StreamEvent(type=etype, job_id=JOB_ID))
    assert [e.type for e in hub.history(JOB_ID)] == [etype]


def test_history_capped_at_fifty_and_replayed():
    hub = StreamHub()
    for i in range(60):
        hub.broadcast(JOB_ID, StreamEvent(type="E", job_id=JOB_ID, data={"sequence": i}))
    history = hub.history(JOB_ID)
    assert len(history) == 50
    assert history[0].data["sequence"] == 10
    client = hub.register(JOB_ID)
    assert client.qsize() == 50


def test_unregister_last_client_clears_history():
    hub = StreamHub()
    client = hub.register(JOB_ID)
    hub.broadcast(JOB_ID, StreamEvent(type="E", job_id=JOB_ID))
    hub.unregister(JOB_ID, client)
    assert hub.client_count(JOB_ID) == 0
    assert hub.history(JOB_ID) == []