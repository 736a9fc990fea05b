# salesflow/calendar_adapter.py
"""
Capacité createMeeting + résolution du credential calendrier.

- Credential : celui du propriétaire de l'agent, sinon n'importe quel credential réel
  (déploiement mono-tenant). Aucun => CalendarNotConfigured.
- Provider Google (OAuth utilisateur) avec timeout HTTP borné : un timeout est un échec (CalendarError).
"""
from __future__ import annotations

import json
import logging
import socket
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from salesflow import config

logger = logging.getLogger(__name__)

_SCOPES = ["https://www.googleapis.com/auth/calendar"]


class CalendarNotConfigured(Exception):
    """Aucun credential calendrier utilisable (configuration manquante)."""


class CalendarError(Exception):
    """Échec API / réseau / timeout lors de la création du RDV."""


@dataclass(frozen=True)
class CalendarCredential:
    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    calendar_id: str = "primary"
    is_demo: bool = False


@dataclass(frozen=True)
class MeetingRequest:
    title: str
    start: datetime
    end: datetime
    attendee_email: Optional[str] = None
    notes: str = ""


@dataclass(frozen=True)
class MeetingResult:
    event_id: str
    link: Optional[str] = None


# ----------------------------
# Credentials
# ----------------------------

class CredentialStore(Protocol):
    def get_for_user(self, user_id: str) -> Optional[CalendarCredential]:
        ...

    def list_all(self) -> List[CalendarCredential]:
        ...


class InMemoryCredentialStore:
    def __init__(self, credentials: Optional[List[CalendarCredential]] = None) -> None:
        self._by_user: Dict[str, CalendarCredential] = {c.user_id: c for c in credentials or []}

    def get_for_user(self, user_id: str) -> Optional[CalendarCredential]:
        return self._by_user.get(user_id)

    def list_all(self) -> List[CalendarCredential]:
        return list(self._by_user.values())


def load_credentials_file(path: str) -> InMemoryCredentialStore:
    """JSON {"user_id": {"access_token": ..., "refresh_token": ..., "expiry": iso, ...}} ; absent => vide."""
    p = Path(path)
    if not p.exists():
        return InMemoryCredentialStore()
    raw = json.loads(p.read_text(encoding="utf-8"))
    creds = []
    for user_id, d in raw.items():
        expiry = datetime.fromisoformat(d["expiry"]) if d.get("expiry") else None
        creds.append(CalendarCredential(
            user_id=user_id,
            access_token=d["access_token"],
            refresh_token=d.get("refresh_token"),
            expiry=expiry,
            calendar_id=d.get("calendar_id") or "primary",
            is_demo=bool(d.get("is_demo", False)),
        ))
    return InMemoryCredentialStore(creds)


def resolve_credential(store: CredentialStore, owner_id: Optional[str]) -> CalendarCredential:
    """Propriétaire de l'agent d'abord, sinon premier credential non-démo. Lève CalendarNotConfigured."""
    if owner_id:
        cred = store.get_for_user(owner_id)
        if cred is not None:
            return cred
    for cred in store.list_all():
        if not cred.is_demo:
            logger.info("[CAL_ADAPTER] owner=%s has no credential, fallback user=%s", owner_id, cred.user_id)
            return cred
    raise CalendarNotConfigured(f"no calendar credential for owner={owner_id}")


# ----------------------------
# Providers
# ----------------------------

class CalendarAdapter(Protocol):
    """Interface minimale pour un provider calendrier."""

    def create_meeting(self, credential: CalendarCredential, request: MeetingRequest) -> MeetingResult:
        """Crée l'événement. Lève CalendarError / CalendarNotConfigured."""
        ...


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """google-auth attend une expiry naïve en UTC."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class GoogleCalendarAdapter:
    """Google Calendar v3 avec les credentials OAuth de l'utilisateur."""

    def __init__(self, timeout_sec: Optional[float] = None, tz_name: Optional[str] = None):
        self._timeout = config.CALENDAR_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self._tz_name = tz_name or config.TIMEZONE

    def _build_service(self, credential: CalendarCredential):
        import httplib2
        from google.oauth2.credentials import Credentials
        from google_auth_httplib2 import AuthorizedHttp
        from googleapiclient.discovery import build

        creds = Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=config.GOOGLE_TOKEN_URI,
            client_id=config.GOOGLE_CLIENT_ID or None,
            client_secret=config.GOOGLE_CLIENT_SECRET or None,
            scopes=_SCOPES,
            expiry=_naive_utc(credential.expiry),
        )
        http = AuthorizedHttp(creds, http=httplib2.Http(timeout=self._timeout))
        return build("calendar", "v3", http=http, cache_discovery=False)

    def create_meeting(self, credential: CalendarCredential, request: MeetingRequest) -> MeetingResult:
        import httplib2
        from google.auth.exceptions import RefreshError
        from googleapiclient.errors import HttpError

        event = {
            "summary": request.title,
            "description": request.notes or "",
            "start": {"dateTime": request.start.isoformat(), "timeZone": self._tz_name},
            "end": {"dateTime": request.end.isoformat(), "timeZone": self._tz_name},
            "attendees": [{"email": request.attendee_email}] if request.attendee_email else [],
            "reminders": {"useDefault": True},
        }
        try:
            service = self._build_service(credential)
            created = service.events().insert(
                calendarId=credential.calendar_id, body=event, sendUpdates="all"
            ).execute()
        except RefreshError as e:
            logger.warning("[CAL_ADAPTER] credential refresh failed user=%s", credential.user_id)
            raise CalendarNotConfigured(f"credential refresh failed: {e}") from e
        except HttpError as e:
            raise CalendarError(f"google http error: {e}") from e
        except (socket.timeout, OSError, httplib2.HttpLib2Error) as e:
            raise CalendarError(f"google network error: {e}") from e
        event_id = created.get("id")
        if not event_id:
            raise CalendarError("google returned no event id")
        logger.info("[CAL_ADAPTER] event created id=%s calendar=%s", event_id, credential.calendar_id)
        return MeetingResult(event_id=event_id, link=created.get("htmlLink"))


class NoneCalendarAdapter:
    """Provider=none : pas d'accès agenda."""

    def create_meeting(self, credential: CalendarCredential, request: MeetingRequest) -> MeetingResult:
        raise CalendarNotConfigured("calendar provider is none")


def get_calendar_adapter() -> CalendarAdapter:
    """Google si CALENDAR_PROVIDER=google (défaut), sinon provider none."""
    provider = config.CALENDAR_PROVIDER
    if provider == "google":
        return GoogleCalendarAdapter()
    logger.info("[CAL_ADAPTER] provider=%s => none", provider)
    return NoneCalendarAdapter()
