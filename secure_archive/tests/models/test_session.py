from pathlib import Path

import pytest

from secure_archive.crypto.secret import SecretPassword
from secure_archive.models.archive import Direction, EncryptionMethod
from secure_archive.models.session import Session, SessionResult, SessionState


@pytest.mark.parametrize(
    ("state", "active", "terminal"),
    [
        (SessionState.IDLE, False, False),
        (SessionState.VALIDATING, True, False),
        (SessionState.RUNNING, True, False),
        (SessionState.COMPLETED, False, True),
        (SessionState.CANCELLED, False, True),
        (SessionState.FAILED, False, True),
    ],
)
def test_state_classification(state: SessionState, active: bool, terminal: bool) -> None:
    assert state.is_active is active
    assert state.is_terminal is terminal


def test_new_session_defaults() -> None:
    session = Session(
        direction=Direction.ENCRYPT,
        method=EncryptionMethod.AES256,
        password=SecretPassword(b"pw"),
        target=Path("/out/a.zip"),
        source_paths=[Path("/in/a.txt")],
    )

    assert session.state is SessionState.VALIDATING
    assert session.progress == 0
    assert session.files == []
    assert not session.cancel_token.is_cancelled
    assert len(session.session_id) == 12


def test_sessions_get_distinct_ids_and_tokens() -> None:
    def make() -> Session:
        return Session(
            direction=Direction.DECRYPT,
            method=None,
            password=SecretPassword(b"pw"),
            target=Path("/out"),
            source_paths=[Path("/in/a.zip")],
        )

    first, second = make(), make()

    assert first.session_id != second.session_id
    assert first.cancel_token is not second.cancel_token


def test_session_repr_masks_password() -> None:
    session = Session(
        direction=Direction.ENCRYPT,
        method=EncryptionMethod.AES256,
        password=SecretPassword.from_string("hunter2"),
        target=Path("/out/a.zip"),
        source_paths=[],
    )

    assert "hunter2" not in repr(session)


def test_result_flags() -> None:
    result = SessionResult(
        status=SessionState.CANCELLED,
        direction=Direction.ENCRYPT,
        method=EncryptionMethod.SEVEN_ZIP,
        output_path=None,
        message="Operation cancelled by user",
    )

    assert result.cancelled
    assert not result.completed
