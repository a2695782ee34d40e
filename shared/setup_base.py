# shared/setup_base.py

import os
import json
from typing import Dict, Any, Optional
from redis.asyncio import Redis


class SetupBase:
    """
    Configuration loader for the journal service.

    Responsibilities:
      - Load Truth from Redis
      - Extract the component definition for this service
      - Inject declared env vars (truth defaults + shell overrides)
      - Apply service defaults for keys nobody declared
    """

    def __init__(
        self,
        service_name: str,
        logger=None,
        defaults: Optional[Dict[str, Any]] = None,
    ):
        self.service_name = service_name
        self.logger = logger
        self.defaults = dict(defaults or {})

    def log(self, message: str, emoji: str = "ℹ️"):
        if self.logger:
            self.logger.info(message, emoji=emoji)

    async def load_truth(self) -> Dict[str, Any]:
        truth_url = os.getenv("TRUTH_REDIS_URL", "redis://127.0.0.1:6379")
        truth_key = os.getenv("TRUTH_REDIS_KEY", "truth")

        self.log(
            f"loading Truth from Redis (url={truth_url}, key={truth_key})",
            emoji="📥",
        )

        redis = Redis.from_url(truth_url, decode_responses=True)
        try:
            raw = await redis.get(truth_key)
        finally:
            await redis.aclose()

        if not raw:
            raise RuntimeError(
                f"[setup:{self.service_name}] Truth key '{truth_key}' not found or empty"
            )

        truth = json.loads(raw)
        self.log("Truth loaded successfully", emoji="📄")
        return truth

    def build_config(self, truth: Dict[str, Any]) -> Dict[str, Any]:
        """Turn a Truth document into this service's flat config dict."""
        comp = truth.get("components", {}).get(self.service_name)
        if not comp:
            raise RuntimeError(
                f"[setup:{self.service_name}] component missing in Truth"
            )

        self.log("parsing component definition", emoji="🔍")

        cfg: Dict[str, Any] = {
            "service_name": self.service_name,
            "meta": comp.get("meta", {}),
        }

        env_declared = comp.get("env", {})
        overridden = 0
        for key, default_value in env_declared.items():
            cfg[key] = os.getenv(key, default_value)
            if os.getenv(key) is not None:
                overridden += 1

        if env_declared:
            self.log(
                f"injected {len(env_declared)} env vars into config "
                f"({overridden} overridden by shell)",
                emoji="🔧",
            )

        for key, value in self.defaults.items():
            if key not in cfg:
                cfg[key] = os.getenv(key, value)

        return cfg

    async def load(self) -> Dict[str, Any]:
        truth = await self.load_truth()
        cfg = self.build_config(truth)
        self.log(f"setup complete for {self.service_name}", emoji="🎉")
        return cfg
