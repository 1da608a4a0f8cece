"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay_core.prompts import build_system_prompt
from relay_core.domain.models import ProviderConfig


SUPPORTED_PROVIDERS = ("gemini", "groq", "openai")

# 历史名称兼容
PROVIDER_ALIASES = {"chatgpt": "openai"}


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("RELAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 选择 ----
    llm_provider: str = Field(
        default="gemini",
        description="当前聊天使用的后端：gemini、groq、openai（chatgpt 视为 openai）",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="生成温度")
    http_timeout: float = Field(default=90.0, ge=1.0, description="HTTP 超时时间（秒）")

    # Gemini（原生方言）
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_model: str = Field(default="gemini-3-flash", description="Gemini 聊天模型")
    gemini_base_url: Optional[str] = Field(default=None, description="Gemini API 基础URL（可选覆盖）")

    # 审核调用固定走 Gemini，与当前聊天后端无关
    approval_gemini_api_key: Optional[str] = Field(
        default=None,
        description="审核专用 Gemini 密钥，未设置时回退到 GEMINI_API_KEY",
    )
    gemini_approval_model: str = Field(default="gemini-3-flash", min_length=1, description="审核模型")

    # Groq（OpenAI 兼容）
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Groq 模型")
    groq_base_url: Optional[str] = Field(default=None, description="Groq API 基础URL（可选覆盖）")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI 模型")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI API 基础URL（可选覆盖）")

    # ---- 提示词 ----
    system_prompt: str = Field(
        default=(
            "You are a playful AI assistant on Discord. Reply in the same language as the "
            "user's latest message. Keep a light, fun tone while staying helpful and respectful."
        ),
        description="基础系统提示词",
    )
    system_rules_json: str = Field(default="system_rules.json", description="额外规则 JSON 文件路径")

    # ---- 会话记忆 ----
    chat_memory_db_path: str = Field(default="chat_memory.db", description="会话记忆 SQLite 路径")
    max_history: int = Field(default=10, ge=1, description="每个频道保留的最大对话轮数（user+assistant 为一轮）")
    memory_idle_ttl_seconds: int = Field(default=300, ge=0, description="频道空闲多少秒后清空记忆，0 表示不清理")
    memory_cleanup_interval_seconds: float = Field(default=60.0, gt=0, description="空闲清理间隔（秒）")
    memory_lock_stripes: int = Field(default=16, ge=1, le=256, description="记忆存储锁分片数量")

    # ---- 回复与附件 ----
    max_reply_chars: int = Field(default=1800, ge=100, description="单条回复最大字符数")
    image_max_bytes: int = Field(default=5 * 1024 * 1024, ge=1, description="单张图片最大字节数")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("llm_provider", mode="before")
    @classmethod
    def validate_provider(cls, v: Any) -> str:
        name = str(v or "").strip().lower()
        name = PROVIDER_ALIASES.get(name, name)
        if name not in SUPPORTED_PROVIDERS:
            raise ValueError("LLM_PROVIDER must be one of: gemini, groq, openai, chatgpt")
        return name

    @field_validator("gemini_api_key", "approval_gemini_api_key", "groq_api_key", "openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @model_validator(mode="after")
    def fallback_approval_key(self) -> "Settings":
        if not self.approval_gemini_api_key:
            self.approval_gemini_api_key = self.gemini_api_key
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def full_system_prompt(self) -> str:
        """基础提示词 + 规则 JSON 生成的附加提示词。"""
        return build_system_prompt(self.system_prompt, self.system_rules_json)

    def provider_config(self) -> ProviderConfig:
        """把扁平配置转换为不可变的 ProviderConfig。"""
        base_urls = {
            name: url
            for name, url in (
                ("gemini", self.gemini_base_url),
                ("groq", self.groq_base_url),
                ("openai", self.openai_base_url),
            )
            if url
        }
        return ProviderConfig(
            provider=self.llm_provider,
            models={
                "gemini": self.gemini_model,
                "groq": self.groq_model,
                "openai": self.openai_model,
            },
            api_keys={
                "gemini": self.gemini_api_key,
                "groq": self.groq_api_key,
                "openai": self.openai_api_key,
            },
            temperature=self.temperature,
            approval_model=self.gemini_approval_model,
            approval_api_key=self.approval_gemini_api_key,
            base_urls=base_urls,
            http_timeout=self.http_timeout,
        )


settings = Settings()
