from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from festival.core.security import create_session_token, verify_session_token


def test_session_round_trip():
    uid = uuid.uuid4()
    payload = verify_session_token(create_session_token(user_id=uid, role="STUDENT"))
    assert payload is not None
    assert payload.user_id == uid
    assert payload.role == "STUDENT"


def test_tampered_signature_rejected():
    token = create_session_token(user_id=uuid.uuid4(), role="ADMIN")
    head, body, sig = token.split(".")
    flipped = ("A" if sig[0] != "A" else "B") + sig[1:]
    assert verify_session_token(f"{head}.{body}.{flipped}") is None


def test_tampered_payload_rejected():
    student = create_session_token(user_id=uuid.uuid4(), role="STUDENT")
    admin = create_session_token(user_id=uuid.uuid4(), role="ADMIN")
    s_head, _, s_sig = student.split(".")
    _, a_body, _ = admin.split(".")
    assert verify_session_token(f"{s_head}.{a_body}.{s_sig}") is None


def test_expired_token_rejected():
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    token = create_session_token(user_id=uuid.uuid4(), role="STUDENT", max_age_seconds=60, now=issued)
    assert verify_session_token(token) is None


def test_garbage_rejected():
    assert verify_session_token("") is None
    assert verify_session_token("not-a-token") is None
