"""
分发清单数据模型

定义服务器清单、内容模块、校验值以及内容检查策略，并负责从分发文档中解析它们。
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from packsync.exceptions import ManifestParseError

# 清单与本地校验统一使用的摘要算法
DIGEST_ALGORITHM = "sha256"

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def _require(data: Mapping[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in data:
        raise ManifestParseError(
            f"{where} 缺少字段 '{key}'", context={"where": where, "field": key}
        )
    value = data[key]
    # bool 是 int 的子类，这里必须精确匹配
    if kind is bool and not isinstance(value, bool):
        raise ManifestParseError(
            f"{where}.{key} 必须是布尔值",
            context={"where": where, "field": key, "value": repr(value)},
        )
    if not isinstance(value, kind):
        raise ManifestParseError(
            f"{where}.{key} 类型错误，应为 {kind.__name__}",
            context={"where": where, "field": key, "value": repr(value)},
        )
    return value


def _hex_digest(value: Any, where: str) -> str:
    if not isinstance(value, str) or not _HEX_DIGEST.match(value.lower()):
        raise ManifestParseError(
            f"{where} 不是有效的 SHA-256 十六进制摘要",
            context={"where": where, "value": repr(value)},
        )
    return value.lower()


@dataclass(frozen=True)
class Checksum:
    """压缩包校验值"""

    hexdigest: str
    algorithm: str = DIGEST_ALGORITHM

    def __post_init__(self):
        if self.algorithm != DIGEST_ALGORITHM:
            raise ManifestParseError(
                f"不支持的摘要算法: {self.algorithm}",
                context={"algorithm": self.algorithm},
            )

    def matches(self, hexdigest: str) -> bool:
        return self.hexdigest == hexdigest.lower()


@dataclass(frozen=True)
class CheckerPolicy:
    """
    单个模块的内容检查策略

    三个开关都必须在清单中显式给出，未知字段同样视为错误。
    """

    allow_external_content: bool
    update_on_mismatch: bool
    scan_subfolders: bool

    # 分发文档字段名 -> 属性名
    FIELDS = {
        "allow_external_content": "allow_external_content",
        "update_if_checksum_mismatch": "update_on_mismatch",
        "scan_subfolder": "scan_subfolders",
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str = "content_checker"):
        unknown = set(data) - set(cls.FIELDS)
        if unknown:
            raise ManifestParseError(
                f"{where} 含有未知字段: {', '.join(sorted(unknown))}",
                context={"where": where, "fields": sorted(unknown)},
            )
        values = {
            attr: _require(data, key, bool, where) for key, attr in cls.FIELDS.items()
        }
        return cls(**values)


@dataclass(frozen=True)
class Module:
    """
    内容模块

    一个独立版本化的内容集合（例如 mods 文件夹），对应一个压缩包。
    """

    id: str
    url: str
    checksum: Checksum
    version: str
    remove_folder_before_update: bool = False
    expected_files: Mapping[str, str] = field(default_factory=dict, hash=False)
    checker: Optional[CheckerPolicy] = None

    def __post_init__(self):
        # 冻结期望文件映射，避免清单在会话中被修改
        object.__setattr__(
            self, "expected_files", MappingProxyType(dict(self.expected_files))
        )

    @property
    def archive_name(self) -> str:
        return f"temp_{self.id}.zip"


@dataclass(frozen=True)
class Manifest:
    """服务器分发清单（按模块顺序）"""

    server_id: str
    modules: Tuple[Module, ...] = ()
    name: str = ""

    def __iter__(self):
        return iter(self.modules)

    def __len__(self) -> int:
        return len(self.modules)

    def get(self, module_id: str) -> Optional[Module]:
        for module in self.modules:
            if module.id == module_id:
                return module
        return None

    @classmethod
    def from_server_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        """
        从分发文档中的单个服务器条目解析清单

        Args:
            data: ``servers`` 列表中的一项

        Returns:
            Manifest 对象
        """
        server_id = _require(data, "id", str, "server")
        where = f"servers[{server_id}].game_file"
        game_file = data.get("game_file") or {}
        if not isinstance(game_file, dict):
            raise ManifestParseError(f"{where} 必须是对象", context={"where": where})

        files = game_file.get("files") or {}
        checkers = game_file.get("content_checker") or {}
        if not isinstance(files, dict) or not isinstance(checkers, dict):
            raise ManifestParseError(
                f"{where}.files / content_checker 必须是对象",
                context={"where": where},
            )

        unknown = set(checkers) - set(files)
        if unknown:
            raise ManifestParseError(
                f"content_checker 引用了不存在的模块: {', '.join(sorted(unknown))}",
                context={"where": where, "modules": sorted(unknown)},
            )

        modules = []
        for module_id, entry in files.items():
            modules.append(
                _parse_module(module_id, entry, checkers.get(module_id), where)
            )

        return cls(
            server_id=server_id,
            modules=tuple(modules),
            name=data.get("name", "") or "",
        )

    @classmethod
    def from_distribution(cls, data: Mapping[str, Any], server_id: str) -> "Manifest":
        """从完整分发文档中选出指定服务器的清单"""
        servers = data.get("servers")
        if not isinstance(servers, list):
            raise ManifestParseError("分发文档缺少 servers 列表")
        for server in servers:
            if isinstance(server, dict) and server.get("id") == server_id:
                return cls.from_server_dict(server)
        raise ManifestParseError(
            f"分发文档中没有服务器 '{server_id}'", context={"server_id": server_id}
        )


def _parse_module(
    module_id: str,
    entry: Any,
    checker: Optional[Dict[str, Any]],
    where: str,
) -> Module:
    where = f"{where}.files.{module_id}"
    if not isinstance(entry, dict):
        raise ManifestParseError(f"{where} 必须是对象", context={"where": where})
    if not module_id or "/" in module_id or "\\" in module_id or module_id in (".", ".."):
        raise ManifestParseError(
            f"非法的模块名: {module_id!r}", context={"where": where}
        )

    checksum = Checksum(
        hexdigest=_hex_digest(entry.get("sha256"), f"{where}.sha256"),
        algorithm=entry.get("algorithm", DIGEST_ALGORITHM),
    )
    version = entry.get("version")
    if isinstance(version, (int, float)) and not isinstance(version, bool):
        version = str(version)

    policy = None
    expected: Dict[str, str] = {}
    if checker is not None:
        checker_where = f"content_checker.{module_id}"
        if not isinstance(checker, dict):
            raise ManifestParseError(
                f"{checker_where} 必须是对象", context={"where": checker_where}
            )
        checker = dict(checker)
        hashes = checker.pop("sha256", None)
        if not isinstance(hashes, dict):
            raise ManifestParseError(
                f"{checker_where}.sha256 必须是 文件名 -> 摘要 的映射",
                context={"where": checker_where},
            )
        expected = {
            name: _hex_digest(digest, f"{checker_where}.sha256[{name}]")
            for name, digest in hashes.items()
        }
        policy = CheckerPolicy.from_dict(checker, checker_where)

    return Module(
        id=module_id,
        url=_require(entry, "url", str, where),
        checksum=checksum,
        version=_require({"version": version}, "version", str, where),
        remove_folder_before_update=(
            _require(entry, "remove_folder_before_update", bool, where)
            if "remove_folder_before_update" in entry
            else False
        ),
        expected_files=expected,
        checker=policy,
    )
