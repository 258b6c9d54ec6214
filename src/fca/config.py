"""
Client options, built explicitly or from FCA_* environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .types import DEFAULT_USER_AGENT, EditSettings

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUTHY


def _csv(env: Mapping[str, str], name: str) -> Optional[frozenset]:
    raw = env.get(name)
    if not raw:
        return None
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class Options:
    user_agent: str = DEFAULT_USER_AGENT
    proxy: Optional[str] = None
    region: Optional[str] = None
    accept_language: str = "en-US,en;q=0.9"
    online: bool = True
    safe_mode: bool = False
    ultra_safe_mode: bool = False
    allow_list: Optional[frozenset] = None
    block_list: Optional[frozenset] = None
    edit_settings: EditSettings = field(default_factory=EditSettings)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Options":
        env = os.environ if env is None else env
        ultra = _flag(env, "FCA_ULTRA_SAFE_MODE")
        return cls(
            user_agent=env.get("FCA_USER_AGENT") or DEFAULT_USER_AGENT,
            proxy=env.get("FCA_PROXY") or env.get("HTTPS_PROXY") or env.get("HTTP_PROXY"),
            region=env.get("FCA_REGION") or None,
            accept_language=env.get("FCA_ACCEPT_LANGUAGE") or "en-US,en;q=0.9",
            safe_mode=ultra or _flag(env, "FCA_SAFE_MODE"),
            ultra_safe_mode=ultra,
            allow_list=_csv(env, "FCA_ALLOW_LIST"),
            block_list=_csv(env, "FCA_BLOCK_LIST"),
        )

    @property
    def proxies(self) -> Optional[dict[str, str]]:
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy}
