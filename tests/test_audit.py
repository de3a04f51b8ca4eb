import logging

from opaca.crud import (
    AuditEvent,
    AuditEventKind,
    InMemoryAuditSink,
    LoggingAuditSink,
    RequestContext,
)


def test_event_dict_flattens_payload():
    event = AuditEvent(AuditEventKind.DELETE, "products", {"id": "p1", "soft": True})
    assert event.to_dict() == {
        "kind": "delete",
        "table": "products",
        "id": "p1",
        "soft": True,
    }


async def test_in_memory_sink_filters_by_kind():
    sink = InMemoryAuditSink()
    ctx = RequestContext()
    await sink.on_event(AuditEvent(AuditEventKind.CREATE, "products"), ctx)
    await sink.on_event(AuditEvent(AuditEventKind.READ, "products"), ctx)
    assert [e.kind for e in sink.of_kind(AuditEventKind.READ)] == [AuditEventKind.READ]
    sink.clear()
    assert sink.events == []


def test_logging_sink(caplog):
    sink = LoggingAuditSink()
    with caplog.at_level(logging.INFO, logger="opaca.audit"):
        sink.on_event(
            AuditEvent(AuditEventKind.UPDATE, "products", {"id": "p1"}),
            RequestContext(request_id="req-1"),
        )
    assert "audit update on products (request_id=req-1)" in caplog.text
