import logging
import os
from typing import Dict, Optional

import uvicorn

logger = logging.getLogger("hrdc.serve")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _ssl_options() -> Dict[str, Optional[str]]:
    options: Dict[str, Optional[str]] = {}
    for env_name, option in (
        ("SSL_CERTFILE", "ssl_certfile"),
        ("SSL_KEYFILE", "ssl_keyfile"),
        ("SSL_KEYFILE_PASSWORD", "ssl_keyfile_password"),
    ):
        value = os.getenv(env_name)
        if value:
            options[option] = value
    return options


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    workers = max(int(os.getenv("WEB_CONCURRENCY", "1")), 1)
    reload_enabled = _flag("RELOAD")
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if workers > 1 and _flag("BACKGROUND_JOBS_ENABLED", "true"):
        # Each worker owns its email queue and reminder runner.
        logger.warning(
            "background jobs run in every worker process",
            extra={"workers": workers},
        )
    if workers > 1 and not _flag("REALTIME_ENABLED"):
        logger.warning("live notifications only reach clients of the publishing worker without MQTT")

    uvicorn.run(
        "hrdc.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        workers=None if reload_enabled else workers,
        log_level=log_level,
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_ssl_options(),
    )


if __name__ == "__main__":
    main()
