"""
Firebase service for the college directory and advisor history in Firestore.
"""
from __future__ import annotations

import os
import json
import logging
from typing import List, Dict, Any, Optional, Iterable
from pathlib import Path
from dotenv import load_dotenv

from google.api_core.exceptions import Conflict

try:
    import firebase_admin
    from firebase_admin import credentials, firestore
    FIREBASE_AVAILABLE = True
except ImportError:
    FIREBASE_AVAILABLE = False

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()
load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env", override=False)

SCRAPED_COLLEGES_COLLECTION = "scraped-colleges"
COLLEGES_MASTER_COLLECTION = "collegesMaster"

HISTORY_KINDS = (
    "profilerHistory",
    "streamSuggestionHistory",
    "degreeRecommendationHistory",
    "careerExplorationHistory",
    "careerPlanHistory",
    "nearbyCollegesHistory",
    "chatHistory",
)

# Firestore rejects batches larger than this
MAX_BATCH_WRITES = 500


def _server_timestamp() -> Any:
    return firestore.SERVER_TIMESTAMP


class FirebaseService:
    """Service for reading and writing Firestore documents."""

    _app = None
    _db = None

    def __init__(self, client: Any = None):
        """Initialize Firebase Admin SDK, or wrap an already-built Firestore client."""
        if client is not None:
            self._client = client
            return

        if not FIREBASE_AVAILABLE:
            raise ImportError(
                "firebase-admin is not installed. Install it with: pip install firebase-admin"
            )

        if FirebaseService._app is None:
            logger.info("[Firebase] [INIT] Firebase app is None, initializing...")
            self._initialize_firebase()

        if FirebaseService._db is None:
            FirebaseService._db = firestore.client()
            logger.info("[Firebase] [INIT] Firestore client created")
        self._client = FirebaseService._db

    @property
    def db(self) -> Any:
        return self._client

    def _initialize_firebase(self):
        """
        Initialize Firebase Admin SDK with credentials from environment variables.

        Priority:
        1. GOOGLE_APPLICATION_CREDENTIALS_JSON (JSON string directly in env var)
        2. GOOGLE_APPLICATION_CREDENTIALS (file path to JSON file)
        3. FIREBASE_PROJECT_ID + FIREBASE_CLIENT_EMAIL + FIREBASE_PRIVATE_KEY
        4. FIREBASE_PROJECT_ID alone (Application Default Credentials)
        """
        try:
            FirebaseService._app = firebase_admin.get_app()
            logger.info("[Firebase] Firebase already initialized")
            return
        except ValueError:
            logger.info("[Firebase] Initializing Firebase...")

        try:
            firebase_json = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
            service_account_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
            project_id = os.getenv("FIREBASE_PROJECT_ID")
            client_email = os.getenv("FIREBASE_CLIENT_EMAIL")
            private_key = os.getenv("FIREBASE_PRIVATE_KEY")

            # METHOD 1: JSON string in env var (preferred for deployment)
            if firebase_json:
                try:
                    cred_dict = json.loads(firebase_json)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Invalid JSON in GOOGLE_APPLICATION_CREDENTIALS_JSON: {str(e)}")
                FirebaseService._app = firebase_admin.initialize_app(credentials.Certificate(cred_dict))
                logger.info("[Firebase] [OK] Firebase initialized from JSON string")

            # METHOD 2: service account file (local development)
            elif service_account_path:
                path = os.path.abspath(os.path.normpath(service_account_path))
                if not os.path.exists(path):
                    raise FileNotFoundError(f"Service account file not found: {path}")
                FirebaseService._app = firebase_admin.initialize_app(credentials.Certificate(path))
                logger.info("[Firebase] [OK] Firebase initialized from file %s", path)

            # METHOD 3: discrete service-account fields
            elif project_id and client_email and private_key:
                cred = credentials.Certificate({
                    "type": "service_account",
                    "project_id": project_id,
                    "client_email": client_email,
                    "private_key": private_key.replace("\\n", "\n"),
                    "token_uri": "https://oauth2.googleapis.com/token",
                })
                FirebaseService._app = firebase_admin.initialize_app(cred)
                logger.info("[Firebase] [OK] Firebase initialized from FIREBASE_* service account fields")

            # METHOD 4: Application Default Credentials
            elif project_id:
                FirebaseService._app = firebase_admin.initialize_app(options={"projectId": project_id})
                logger.info("[Firebase] [OK] Firebase initialized with project ID %s", project_id)

            else:
                raise ValueError(
                    "No Firebase credentials found. Please set one of:\n"
                    "  - GOOGLE_APPLICATION_CREDENTIALS_JSON (JSON string)\n"
                    "  - GOOGLE_APPLICATION_CREDENTIALS (file path)\n"
                    "  - FIREBASE_PROJECT_ID, FIREBASE_CLIENT_EMAIL, FIREBASE_PRIVATE_KEY\n"
                    "  - FIREBASE_PROJECT_ID (for Application Default Credentials)"
                )
        except (RuntimeError, ValueError, FileNotFoundError):
            raise
        except Exception as e:
            raise RuntimeError(f"Failed to initialize Firebase: {str(e)}") from e

    # ------------------------------------------------------------------
    # College directory
    # ------------------------------------------------------------------

    def college_exists(self, doc_id: str, collection: str = SCRAPED_COLLEGES_COLLECTION) -> bool:
        try:
            return self._client.collection(collection).document(doc_id).get().exists
        except Exception as e:
            raise RuntimeError(f"Failed to check college {doc_id}: {str(e)}") from e

    def insert_college_if_absent(
        self,
        doc_id: str,
        data: Dict[str, Any],
        collection: str = SCRAPED_COLLEGES_COLLECTION,
    ) -> bool:
        """
        Insert a college document unless one already exists under ``doc_id``.

        Existing documents are never overwritten. ``create()`` fails when the
        document appeared after the existence check, which keeps the insert
        atomic per key across concurrent runs.

        Returns:
            True if the document was written, False if it was skipped
        """
        if self.college_exists(doc_id, collection):
            return False

        document_data = {
            **data,
            "createdAt": _server_timestamp(),
            "updatedAt": _server_timestamp(),
        }
        try:
            self._client.collection(collection).document(doc_id).create(document_data)
        except Conflict:
            logger.info("[Firebase] College %s was inserted concurrently, skipping", doc_id)
            return False
        except Exception as e:
            raise RuntimeError(f"Failed to insert college {doc_id}: {str(e)}") from e
        return True

    def seed_colleges(
        self,
        records: Iterable[Dict[str, Any]],
        collection: str = COLLEGES_MASTER_COLLECTION,
        merge: bool = False,
    ) -> int:
        """
        Write directory records in batches, keyed by their numeric id.

        Returns:
            Number of documents written
        """
        records = list(records)
        written = 0
        try:
            collection_ref = self._client.collection(collection)
            for start in range(0, len(records), MAX_BATCH_WRITES):
                batch = self._client.batch()
                chunk = records[start : start + MAX_BATCH_WRITES]
                for record in chunk:
                    batch.set(collection_ref.document(str(record["id"])), record, merge=merge)
                batch.commit()
                written += len(chunk)
                logger.info("[Firebase] [BATCH] Committed %d/%d colleges to %s", written, len(records), collection)
        except Exception as e:
            raise RuntimeError(f"Failed to seed colleges into {collection}: {str(e)}") from e
        return written

    # ------------------------------------------------------------------
    # Advisor history
    # ------------------------------------------------------------------

    def save_history(self, user_id: str, kind: str, data: Dict[str, Any]) -> str:
        """
        Save one advisor history entry under ``users/{user_id}/{kind}``.

        Returns:
            The document ID of the saved entry
        """
        if kind not in HISTORY_KINDS:
            raise ValueError(f"Unknown history kind: {kind}")
        try:
            document_data = dict(data)
            document_data.setdefault("createdAt", _server_timestamp())
            result = (
                self._client.collection("users")
                .document(user_id)
                .collection(kind)
                .add(document_data)
            )
            # add() returns (update_time, document_reference)
            _, doc_ref = result
            logger.info("[Firebase] [SAVE] users/%s/%s/%s", user_id, kind, doc_ref.id)
            return doc_ref.id
        except Exception as e:
            raise RuntimeError(f"Failed to save {kind} for user {user_id}: {str(e)}") from e

    def get_history(self, user_id: str, kind: str, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Fetch a user's advisor history, newest first.
        """
        if kind not in HISTORY_KINDS:
            raise ValueError(f"Unknown history kind: {kind}")
        order_field = "timestamp" if kind == "chatHistory" else "createdAt"
        try:
            query = (
                self._client.collection("users")
                .document(user_id)
                .collection(kind)
                .order_by(order_field, direction=firestore.Query.DESCENDING)
                .limit(limit)
            )
            entries = []
            for doc in query.stream():
                entry = doc.to_dict()
                entry["id"] = doc.id
                entries.append(entry)
            return entries
        except Exception as e:
            raise RuntimeError(f"Failed to fetch {kind} for user {user_id}: {str(e)}") from e


# Singleton instance
_firebase_service: Optional[FirebaseService] = None


def get_firebase_service() -> FirebaseService:
    """Get or create the Firebase service instance."""
    global _firebase_service
    if _firebase_service is None:
        _firebase_service = FirebaseService()
    return _firebase_service
