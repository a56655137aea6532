import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from google.cloud import firestore
from google.api_core.exceptions import GoogleAPICallError, RetryError, ServiceUnavailable

logger = logging.getLogger(__name__)

# -----------------------
# SETTINGS
# -----------------------
COLLECTION_NAME = "order_events"
MAX_RETRIES = 3
RETRY_SLEEP_SECONDS = 1.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FirestoreEventLog:
    """
    Append-only log of order events (settlements, counter sales) in Firestore.

    IMPORTANT:
    Use Firestore Native database id: "default"
    NOT "(default)" which is Datastore mode.
    """

    def __init__(
        self,
        database_id: str = "default",
        client: Optional[firestore.Client] = None,
        sleep=time.sleep,
    ):
        self.database_id = database_id
        self._client = client
        self._sleep = sleep

    def get_client(self) -> firestore.Client:
        """Creates the Firestore client on first use and caches it."""
        if self._client is None:
            self._client = firestore.Client(database=self.database_id)
        return self._client

    def log_order_event(
        self,
        order_id: Any,
        user_email: str,
        event: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Writes an event document into Firestore Native. Returns the document id.

        - retries temporary errors
        - raises error if it still fails (so you KNOW it's broken)
        """
        db = self.get_client()

        doc = {
            "order_id": str(order_id),
            "user_email": user_email or "",
            "event": event,
            "payload": payload or {},
            "created_at": firestore.SERVER_TIMESTAMP,
            "created_at_iso": _now_iso(),
        }

        last_err = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                ref = db.collection(COLLECTION_NAME).document()
                ref.set(doc)
                logger.debug("Order event %s written as %s", event, ref.id)
                return ref.id

            except (ServiceUnavailable, GoogleAPICallError, RetryError) as e:
                last_err = e
                logger.warning(
                    "Firestore write failed (attempt %d/%d): %s", attempt, MAX_RETRIES, e
                )
                if attempt < MAX_RETRIES:
                    self._sleep(RETRY_SLEEP_SECONDS * attempt)

        raise RuntimeError(f"Firestore write failed after {MAX_RETRIES} attempts: {last_err}")
