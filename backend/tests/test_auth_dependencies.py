import pytest
from fastapi import HTTPException

import backend.main as backend_main


def test_session_cookie_resolves_current_user(monkeypatch):
    user = backend_main.UserOut(id="123", username="alice")
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: user if uid == "123" else None)

    assert backend_main.get_current_user(backend_main.create_access_token(subject="123")) is user
    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user(None)
    assert exc.value.status_code == 401
