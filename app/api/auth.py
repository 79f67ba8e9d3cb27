from typing import FrozenSet, Optional

from fastapi import Header, HTTPException, Request

from app.medtrack.config import load_settings

ALL_CAPABILITIES: FrozenSet[str] = frozenset({"admin", "reports"})


def resolve_capabilities(api_key: Optional[str]) -> FrozenSet[str]:
    """Capabilities granted to an API key by MT_API_KEYS.

    With no keys configured (developer mode) every capability is granted.
    Reads the environment at call time so test monkeypatching works.
    """
    settings = load_settings()
    if not settings.auth_enabled:
        return ALL_CAPABILITIES
    if not api_key or api_key not in settings.api_keys:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return settings.api_keys[api_key]


def require_capability(capability: str):
    def dep(request: Request, x_api_key: Optional[str] = Header(None)):
        key = x_api_key or request.cookies.get("mt_api_key")
        caps = resolve_capabilities(key)
        request.state.capabilities = caps
        if capability not in caps:
            raise HTTPException(status_code=403, detail="forbidden")
        return caps

    return dep
