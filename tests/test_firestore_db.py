"""
Tests for the Firestore order-event log, with the client mocked out.
"""

from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import ServiceUnavailable

from firestore_db import COLLECTION_NAME, MAX_RETRIES, FirestoreEventLog


def _client(*set_results):
    """Client whose document refs have id "doc-1" and whose set() follows ``set_results``."""
    client = MagicMock()
    ref = client.collection.return_value.document.return_value
    ref.id = "doc-1"
    ref.set.side_effect = list(set_results)
    return client, ref


class TestFirestoreEventLog:
    def test_writes_event_document(self):
        client, ref = _client(None)
        log = FirestoreEventLog(client=client, sleep=MagicMock())

        doc_id = log.log_order_event(12, "ana@mesa.test", "TABLE_SETTLED", {"total": 31.5})

        assert doc_id == "doc-1"
        client.collection.assert_called_with(COLLECTION_NAME)
        doc = ref.set.call_args.args[0]
        assert doc["order_id"] == "12"
        assert doc["user_email"] == "ana@mesa.test"
        assert doc["event"] == "TABLE_SETTLED"
        assert doc["payload"] == {"total": 31.5}

    def test_retries_temporary_errors(self):
        client, ref = _client(ServiceUnavailable("busy"), None)
        sleep = MagicMock()
        log = FirestoreEventLog(client=client, sleep=sleep)

        assert log.log_order_event(1, "", "QUICK_BILL_PAID") == "doc-1"
        assert ref.set.call_count == 2
        sleep.assert_called_once_with(1.0)

    def test_gives_up_after_max_retries(self):
        client, ref = _client(*[ServiceUnavailable("down")] * MAX_RETRIES)
        sleep = MagicMock()
        log = FirestoreEventLog(client=client, sleep=sleep)

        with pytest.raises(RuntimeError, match="after 3 attempts"):
            log.log_order_event(1, "", "TABLE_SETTLED")
        assert ref.set.call_count == MAX_RETRIES
        # backoff grows linearly, no sleep after the last attempt
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_other_errors_are_not_retried(self):
        client, ref = _client(ValueError("bad document"))
        log = FirestoreEventLog(client=client, sleep=MagicMock())

        with pytest.raises(ValueError):
            log.log_order_event(1, "", "TABLE_SETTLED")
        assert ref.set.call_count == 1
