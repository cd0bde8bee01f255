import firebase_admin
from firebase_admin import credentials, db

from config import FIREBASE_CRED_PATH, FIREBASE_DB_URL
from logger import get_logger

logger = get_logger("firebase")


def get_db_ref(path: str = "/"):
    """Realtime database reference, initialising the Firebase app on first use."""
    if not firebase_admin._apps:
        try:
            cred = credentials.Certificate(FIREBASE_CRED_PATH)
            firebase_admin.initialize_app(cred, {
                'databaseURL': FIREBASE_DB_URL
            })
        except Exception as e:
            raise RuntimeError(f"Firebase initialization failed: {e}") from e
    return db.reference(path)


class FirebaseSessionStore:
    """Auth sessions stored under `sessions/<sessionId>`."""

    def __init__(self, ref=None):
        self._ref = ref

    @property
    def ref(self):
        if self._ref is None:
            self._ref = get_db_ref("/")
        return self._ref

    def load(self, session_id: str):
        try:
            return self.ref.child("sessions").child(session_id).get()
        except Exception as e:
            logger.warning(f"Error loading session '{session_id}': {e}")
            return None

    def save(self, session_id: str, data: dict) -> None:
        self.ref.child("sessions").child(session_id).set(data)

    def delete(self, session_id: str) -> None:
        self.ref.child("sessions").child(session_id).delete()
