"""
配置存储

读写启动器配置文件（TOML），并作为持久化的版本账本。
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml
import yaml
from loguru import logger

from packsync.exceptions import ConfigError, ConfigParseError
from packsync.models import LauncherConfig
from packsync.models.config import LEDGER_TABLE


def load_config_file(config_path: str) -> Dict[str, Any]:
    """按扩展名加载配置文件（toml / json / yaml）"""
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            return toml.load(config_path)
        elif suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {e}", context={"path": config_path}
        ) from e

    raise ConfigError(f"不支持的配置文件格式: {suffix}")


class ConfigStore:
    """
    启动器配置存储

    配置与内容版本记录保存在同一个 TOML 文件中::

        [launcher]
        distribution_url = "https://example.com/distribution.json"
        server_id = "example"
        launcher_dir = "/home/me/.packsync"

        [content_versions.example]
        mods = "2"
    """

    def __init__(self, config: LauncherConfig, path: Optional[str] = None):
        self.config = config
        self.path = path or os.path.join(config.launcher_dir, "config.toml")
        self._versions: Dict[str, Dict[str, str]] = {}

    @classmethod
    def load(cls, path: str) -> "ConfigStore":
        """从配置文件加载"""
        data = load_config_file(path)
        store = cls(LauncherConfig.from_dict(data), path)

        versions = data.get(LEDGER_TABLE, {})
        if not isinstance(versions, dict):
            raise ConfigParseError("content_versions 必须是表", context={"path": path})
        for server_id, modules in versions.items():
            if not isinstance(modules, dict):
                raise ConfigParseError(
                    f"content_versions.{server_id} 必须是表", context={"path": path}
                )
            store._versions[server_id] = {k: str(v) for k, v in modules.items()}
        logger.debug(f"[配置] 已加载配置: {path}")
        return store

    def get_launcher_dir(self) -> str:
        return self.config.launcher_dir

    def get_instance_dir(self, server_id: Optional[str] = None) -> str:
        """服务器实例目录：<instance_dir>/<server_id>"""
        return os.path.join(self.config.instance_dir, server_id or self.config.server_id)

    def get(self, server_id: str, module_id: str) -> Optional[str]:
        return self._versions.get(server_id, {}).get(module_id)

    def set(self, server_id: str, module_id: str, version: str) -> None:
        """记录版本并立即写盘"""
        self._versions.setdefault(server_id, {})[module_id] = version
        self.save()

    def save(self):
        """原子写入配置文件"""
        data = {
            "launcher": {
                k: v for k, v in self.config.to_dict().items() if v is not None
            },
            LEDGER_TABLE: self._versions,
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        suffix = Path(self.path).suffix.lower()
        with open(tmp_path, "w", encoding="utf-8") as f:
            if suffix == ".json":
                json.dump(data, f, indent=2, ensure_ascii=False)
            elif suffix in (".yaml", ".yml"):
                yaml.safe_dump(data, f, allow_unicode=True)
            else:
                toml.dump(data, f)
        os.replace(tmp_path, self.path)
