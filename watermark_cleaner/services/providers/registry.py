"""Build the configured provider chain in priority order."""

from __future__ import annotations

from collections.abc import Sequence

import requests
from loguru import logger

from watermark_cleaner.core.config import Settings
from watermark_cleaner.services.providers.base import RemovalProvider
from watermark_cleaner.services.providers.replicate import ReplicateProvider
from watermark_cleaner.services.providers.sync_http import ClipDropProvider, IOPaintProvider

SUPPORTED_PROVIDERS = ("replicate", "iopaint", "clipdrop")


def resolve_provider_names(preferred: Sequence[str] | str | None) -> list[str]:
    """Expand ``auto`` and drop unknown names, keeping the first occurrence of each."""

    raw: list[str]
    if preferred is None:
        raw = ["auto"]
    elif isinstance(preferred, str):
        raw = [part.strip() for part in preferred.split(",") if part.strip()]
    else:
        raw = [str(part).strip() for part in preferred if str(part).strip()]

    resolved: list[str] = []
    for item in (value.lower() for value in raw):
        if item in {"auto", "default"}:
            resolved.extend(SUPPORTED_PROVIDERS)
        elif item in {"none", "local"}:
            continue
        elif item in SUPPORTED_PROVIDERS:
            resolved.append(item)
        else:
            logger.warning(f"Unsupported provider '{item}' ignored.")

    unique: list[str] = []
    for name in resolved:
        if name not in unique:
            unique.append(name)
    return unique


def build_providers(
    settings: Settings,
    session: requests.Session,
    names: Sequence[str] | str | None = None,
) -> list[RemovalProvider]:
    """Instantiate providers in priority order, skipping unconfigured ones."""

    requested = resolve_provider_names(names if names is not None else settings.INPAINT_PROVIDERS)
    providers: list[RemovalProvider] = []

    for name in requested:
        if name == "replicate":
            if not settings.REPLICATE_API_TOKEN:
                logger.info("Skipping replicate provider: REPLICATE_API_TOKEN is not set.")
                continue
            providers.append(
                ReplicateProvider(
                    session,
                    api_token=settings.REPLICATE_API_TOKEN,
                    model_version=settings.REPLICATE_MODEL_VERSION,
                    api_url=settings.REPLICATE_API_URL,
                    timeout=settings.PROVIDER_TIMEOUT_SECONDS,
                    poll_interval=settings.PROVIDER_POLL_INTERVAL_SECONDS,
                    max_polls=settings.PROVIDER_MAX_POLLS,
                )
            )
        elif name == "iopaint":
            if not settings.IOPAINT_URL:
                logger.info("Skipping iopaint provider: IOPAINT_URL is not set.")
                continue
            providers.append(IOPaintProvider(session, settings.IOPAINT_URL, timeout=settings.PROVIDER_TIMEOUT_SECONDS))
        elif name == "clipdrop":
            if not settings.CLIPDROP_API_KEY:
                logger.info("Skipping clipdrop provider: CLIPDROP_API_KEY is not set.")
                continue
            providers.append(
                ClipDropProvider(
                    session,
                    api_key=settings.CLIPDROP_API_KEY,
                    endpoint=settings.CLIPDROP_API_URL,
                    timeout=settings.PROVIDER_TIMEOUT_SECONDS,
                )
            )

    logger.info(f"Provider chain: {', '.join(p.name for p in providers) or 'local only'}")
    return providers
