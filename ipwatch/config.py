import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

_ENV_VAR = re.compile(r"\$\{([^}]+)}")


class Config:
    def __init__(self, config_path: str = "config.yml"):
        load_dotenv()

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        return self._substitute_env_vars(config)

    def _substitute_env_vars(self, config: Any) -> Any:
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            result = config
            for var_name in _ENV_VAR.findall(config):
                result = result.replace(f"${{{var_name}}}", os.getenv(var_name, ""))
            return result
        else:
            return config

    def get(self, key: str, default: Any = None) -> Any:
        value = self._config

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    @property
    def node_selector(self) -> str:
        return self.get("kubernetes.selector", "") or ""

    @property
    def in_cluster(self) -> bool:
        return self.get("kubernetes.in-cluster", True)

    @property
    def kubeconfig(self) -> Optional[str]:
        return os.getenv("KUBECONFIG") or None

    @property
    def resync_period(self) -> float:
        return float(self.get("kubernetes.resync-period", 300))

    @property
    def watch_timeout(self) -> int:
        return int(self.get("kubernetes.watch-timeout", 60))

    @property
    def cloudflare_token(self) -> str:
        return os.getenv("CLOUDFLARE_API_TOKEN", "")

    @property
    def dns_enabled(self) -> bool:
        return self.get("dns.enabled", True)

    @property
    def dns_name(self) -> str:
        return self.get("dns.name", "")

    @property
    def dns_zone(self) -> Optional[str]:
        return self.get("dns.zone")

    @property
    def dns_ttl(self) -> int:
        return int(self.get("dns.ttl", 1))

    @property
    def dns_proxied(self) -> bool:
        return self.get("dns.proxied", False)

    @property
    def telegram_enabled(self) -> bool:
        return self.get("telegram.enabled", False)

    @property
    def telegram_bot_token(self) -> str:
        return os.getenv("TELEGRAM_BOT_TOKEN", "")

    @property
    def telegram_chat_id(self) -> str:
        return os.getenv("TELEGRAM_CHAT_ID", "")

    @property
    def telegram_topic_id(self) -> int | None:
        topic_id = os.getenv("TELEGRAM_TOPIC_ID", "")
        if topic_id and topic_id.strip():
            try:
                return int(topic_id.strip())
            except ValueError:
                return None
        return None

    @property
    def buffer_size(self) -> int:
        return int(self.get("notifier.buffer-size", 128))

    @property
    def broadcast_timeout(self) -> Optional[float]:
        timeout = self.get("broadcast.timeout")
        return float(timeout) if timeout else None

    @property
    def retry_interval(self) -> float:
        return float(self.get("broadcast.retry-interval", 30))

    @property
    def log_level(self) -> str:
        return self.get("logging.level", "INFO")

    @property
    def log_file(self) -> Optional[str]:
        return self.get("logging.file")
