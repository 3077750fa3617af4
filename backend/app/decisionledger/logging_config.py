import logging
import sys
from pathlib import Path

from decisionledger.core.config import settings


def setup_logging(log_dir: str | None = None, level: int = logging.INFO):
    """配置日志"""
    log_path = Path(log_dir or settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    log_file = log_path / "decisionledger.log"

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # 设置第三方库的日志级别
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger = logging.getLogger("decisionledger")
    logger.info("日志服务已启动")
    return logger
