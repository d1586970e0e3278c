from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.api.rfqs import apply_rfq_update, parse_rfq_status, rfq_filters, serialize_rfq
from app.models.rfq import ProductRfq, RfqStatus


def _rfq(**overrides):
    values = {
        "id": 4,
        "product_id": 2,
        "access_id": None,
        "name": "Ana",
        "email": "ana@buyer.co",
        "company": "Buyer Co",
        "phone": None,
        "message": "Need 500 kg per month",
        "quantity": "500 kg",
        "target_date": None,
        "status": RfqStatus.new,
        "response_message": None,
        "responded_at": None,
        "responded_by": None,
        "submitted_at": datetime(2026, 5, 1),
        "updated_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_marking_responded_stamps_time_and_author():
    now = datetime(2026, 5, 2, 9, 30)
    rfq = apply_rfq_update(_rfq(), RfqStatus.responded, "Quote sent", "sales@maker.co", now=now)
    assert rfq.status is RfqStatus.responded
    assert rfq.responded_at == now
    assert rfq.responded_by == "sales@maker.co"
    assert rfq.response_message == "Quote sent"
    assert rfq.updated_at == now


def test_closing_keeps_earlier_response():
    first = datetime(2026, 5, 2)
    rfq = _rfq(status=RfqStatus.responded, responded_at=first, response_message="Quote sent")
    apply_rfq_update(rfq, RfqStatus.closed, "ignored", now=datetime(2026, 5, 9))
    assert rfq.status is RfqStatus.closed
    assert rfq.responded_at == first
    assert rfq.response_message == "Quote sent"


def test_status_parsing():
    assert parse_rfq_status("closed") is RfqStatus.closed
    with pytest.raises(HTTPException) as excinfo:
        parse_rfq_status("won")
    assert excinfo.value.status_code == 400


def test_filters_are_scoped_to_the_organization():
    sql = str(select(ProductRfq).where(*rfq_filters(1, RfqStatus.new, 2, "buyer")))
    assert "product_rfqs.organization_id" in sql
    assert "product_rfqs.status" in sql
    assert "product_rfqs.product_id" in sql
    assert "lower(product_rfqs.company) LIKE lower" in sql
    assert len(rfq_filters(1)) == 1


def test_serialize_includes_product_name():
    payload = serialize_rfq(_rfq(), "Vitamin C")
    assert payload.product_name == "Vitamin C"
    assert payload.status == "new"
