"""配置管理模块 - 支持环境变量和 YAML/JSON 配置文件"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

# YAML 支持（可选依赖）
try:
    import yaml
    YAML_AVAILABLE = True
except ImportError:
    YAML_AVAILABLE = False

if TYPE_CHECKING:
    from .agents.run_config import RunConfig
    from .compaction.compaction_config import EventsCompactionConfig
    from .models.registry import LlmRegistry
    from .types import GenerateContentConfig

logger = logging.getLogger(__name__)

_TRUE_VALUES = ('true', '1', 'yes')


@dataclass
class LLMConfig:
    """LLM 相关配置"""
    api_base: str = ""
    api_key: str = "EMPTY"
    model: str = "gpt-4o-mini"

    # 请求参数
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: float = 60.0


@dataclass
class RunnerConfig:
    """Runner 运行时配置"""
    max_llm_calls: int = 500
    # 使用 SSE 流式调用 LLM（产生 partial 事件）
    streaming: bool = False
    save_input_blobs_as_artifacts: bool = False


@dataclass
class CompactionConfig:
    """历史压缩配置"""
    enabled: bool = False
    compaction_interval: int = 10
    overlap_size: int = 2


@dataclass
class Config:
    """
    主配置类 - 管理所有配置项

    配置优先级（从高到低）:
    1. 代码中直接传入的参数
    2. 环境变量
    3. 配置文件
    4. 默认值

    环境变量命名规则:
    - LLM 配置: ADK_FLOW_API_BASE, ADK_FLOW_API_KEY, ADK_FLOW_MODEL ...
    - Runner 配置: ADK_FLOW_MAX_LLM_CALLS, ADK_FLOW_STREAMING ...
    - 压缩配置: ADK_FLOW_COMPACTION_ENABLED, ADK_FLOW_COMPACTION_INTERVAL ...
    """
    llm: LLMConfig = field(default_factory=LLMConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)

    # 环境变量前缀
    ENV_PREFIX: str = "ADK_FLOW_"

    @classmethod
    def load(
        cls,
        config_file: str | Path | None = None,
        env_prefix: str = "ADK_FLOW_",
    ) -> "Config":
        """
        加载配置

        Args:
            config_file: 可选的配置文件路径 (支持 .yaml, .yml, .json)
            env_prefix: 环境变量前缀
        """
        config = cls()
        config.ENV_PREFIX = env_prefix

        # 1. 从配置文件加载
        if config_file:
            config._load_from_file(config_file)
        else:
            config._auto_discover_config()

        # 2. 从环境变量加载（会覆盖配置文件的值）
        config._load_from_env()

        return config

    def _auto_discover_config(self) -> None:
        """自动发现配置文件（优先 YAML）"""
        search_paths = [
            Path.cwd() / "adk_flow.yaml",
            Path.cwd() / "adk_flow.yml",
            Path.cwd() / ".adk_flow.yaml",
            Path.home() / ".adk_flow.yaml",
            Path.cwd() / "adk_flow.json",
        ]

        for path in search_paths:
            if path.exists():
                logger.debug(f"[Config] Loading {path}")
                self._load_from_file(path)
                break

    def _load_from_file(self, config_file: str | Path) -> None:
        """从配置文件加载（支持 YAML 和 JSON）"""
        path = Path(config_file)

        if not path.exists():
            return

        suffix = path.suffix.lower()

        with open(path, 'r', encoding='utf-8') as f:
            if suffix in ('.yaml', '.yml'):
                if not YAML_AVAILABLE:
                    raise ImportError(
                        "需要安装 PyYAML 来加载 YAML 配置文件: pip install pyyaml"
                    )
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        if data:
            self._apply_dict(data)

    def _load_from_env(self) -> None:
        """从环境变量加载配置"""
        prefix = self.ENV_PREFIX

        # LLM 配置
        if api_base := os.getenv(f"{prefix}API_BASE"):
            self.llm.api_base = api_base

        if api_key := os.getenv(f"{prefix}API_KEY"):
            self.llm.api_key = api_key

        if model := os.getenv(f"{prefix}MODEL"):
            self.llm.model = model

        if temperature := os.getenv(f"{prefix}TEMPERATURE"):
            self.llm.temperature = float(temperature)

        if max_tokens := os.getenv(f"{prefix}MAX_TOKENS"):
            self.llm.max_tokens = int(max_tokens)

        if timeout := os.getenv(f"{prefix}TIMEOUT"):
            self.llm.timeout = float(timeout)

        # Runner 配置
        if max_llm_calls := os.getenv(f"{prefix}MAX_LLM_CALLS"):
            self.runner.max_llm_calls = int(max_llm_calls)

        if streaming := os.getenv(f"{prefix}STREAMING"):
            self.runner.streaming = streaming.lower() in _TRUE_VALUES

        if save_blobs := os.getenv(f"{prefix}SAVE_INPUT_BLOBS_AS_ARTIFACTS"):
            self.runner.save_input_blobs_as_artifacts = save_blobs.lower() in _TRUE_VALUES

        # 压缩配置
        if enabled := os.getenv(f"{prefix}COMPACTION_ENABLED"):
            self.compaction.enabled = enabled.lower() in _TRUE_VALUES

        if interval := os.getenv(f"{prefix}COMPACTION_INTERVAL"):
            self.compaction.compaction_interval = int(interval)

        if overlap := os.getenv(f"{prefix}COMPACTION_OVERLAP_SIZE"):
            self.compaction.overlap_size = int(overlap)

    def _apply_dict(self, data: dict[str, Any]) -> None:
        """从字典应用配置（未知的键忽略）"""
        for section_name, section in (
            ("llm", self.llm),
            ("runner", self.runner),
            ("compaction", self.compaction),
        ):
            section_data = data.get(section_name)
            if not section_data:
                continue
            for key, value in section_data.items():
                if hasattr(section, key):
                    setattr(section, key, value)
                else:
                    logger.warning(f"[Config] Unknown option {section_name}.{key}")

    # ==================== 转换 ====================

    def to_run_config(self) -> 'RunConfig':
        from .agents.run_config import RunConfig, StreamingMode

        return RunConfig(
            streaming_mode=StreamingMode.SSE if self.runner.streaming else StreamingMode.NONE,
            max_llm_calls=self.runner.max_llm_calls,
            save_input_blobs_as_artifacts=self.runner.save_input_blobs_as_artifacts,
            default_model=self.llm.model or None,
            generate_content_config=self.to_generate_content_config(),
        )

    def to_compaction_config(self) -> Optional['EventsCompactionConfig']:
        """未启用压缩时返回 None"""
        if not self.compaction.enabled:
            return None
        from .compaction.compaction_config import EventsCompactionConfig

        return EventsCompactionConfig(
            compaction_interval=self.compaction.compaction_interval,
            overlap_size=self.compaction.overlap_size,
        )

    def to_generate_content_config(self) -> 'GenerateContentConfig':
        from .types import GenerateContentConfig

        return GenerateContentConfig(
            temperature=self.llm.temperature,
            max_output_tokens=self.llm.max_tokens,
        )

    def to_llm_registry(self) -> 'LlmRegistry':
        """所有模型名称都交给 OpenAI 兼容接口处理"""
        from .models.openai_llm import OpenAILlm
        from .models.registry import LlmRegistry

        registry = LlmRegistry()
        registry.register(
            r".*",
            OpenAILlm,
            api_base=self.llm.api_base or None,
            api_key=self.llm.api_key,
            timeout=self.llm.timeout,
        )
        return registry

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "llm": {
                "api_base": self.llm.api_base,
                "api_key": self.llm.api_key,
                "model": self.llm.model,
                "temperature": self.llm.temperature,
                "max_tokens": self.llm.max_tokens,
                "timeout": self.llm.timeout,
            },
            "runner": {
                "max_llm_calls": self.runner.max_llm_calls,
                "streaming": self.runner.streaming,
                "save_input_blobs_as_artifacts": self.runner.save_input_blobs_as_artifacts,
            },
            "compaction": {
                "enabled": self.compaction.enabled,
                "compaction_interval": self.compaction.compaction_interval,
                "overlap_size": self.compaction.overlap_size,
            },
        }

    def save(self, config_file: str | Path) -> None:
        """保存配置到文件（根据扩展名自动选择格式）"""
        path = Path(config_file)
        suffix = path.suffix.lower()

        with open(path, 'w', encoding='utf-8') as f:
            if suffix in ('.yaml', '.yml'):
                if not YAML_AVAILABLE:
                    raise ImportError(
                        "需要安装 PyYAML 来保存 YAML 配置文件: pip install pyyaml"
                    )
                yaml.dump(
                    self.to_dict(),
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
            else:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)


# 全局默认配置实例（懒加载）
_default_config: Config | None = None


def get_config() -> Config:
    """获取全局默认配置"""
    global _default_config
    if _default_config is None:
        _default_config = Config.load()
    return _default_config


def set_config(config: Config) -> None:
    """设置全局默认配置"""
    global _default_config
    _default_config = config
