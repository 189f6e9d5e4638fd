"""Tests for order status aggregation."""

import pytest

from renderq.models.enums import OrderStatus
from renderq.services.order_status import aggregate_order_status


@pytest.mark.parametrize(
    "statuses, expected",
    [
        (["completed", "completed"], OrderStatus.DONE),
        (["completed", "failed"], OrderStatus.ERROR),
        (["failed"], OrderStatus.ERROR),
        (["completed", "failed", "running"], OrderStatus.RUNNING),
        (["failed", "queued"], OrderStatus.RUNNING),
        (["queued", "queued"], OrderStatus.RUNNING),
        (["completed", "running"], OrderStatus.RUNNING),
    ],
)
def test_aggregate(statuses, expected):
    assert aggregate_order_status(statuses) == expected


def test_cancelled_order_wins():
    assert aggregate_order_status(["completed", "completed"], cancelled=True) == OrderStatus.CANCELLED
    assert aggregate_order_status(["running", "cancelled"], cancelled=True) == OrderStatus.CANCELLED


def test_partial_success_is_error_not_done():
    # Two of three rendered; the order is not done but the completed jobs stand
    assert aggregate_order_status(["completed", "completed", "failed"]) == OrderStatus.ERROR
