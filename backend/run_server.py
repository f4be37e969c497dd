"""
后端服务器启动脚本

启动 uvicorn 服务器运行 FastAPI 应用。
"""

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).parent
# 存储目录在项目根目录（与 core/config.py 保持一致）
WORK_DIR = BASE_DIR.parent

if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.chdir(WORK_DIR)


def main():
    """启动服务器"""
    import uvicorn
    from article_forge.core.config import settings
    from article_forge.main import app

    print("=" * 60)
    print("ArticleForge 长文编排服务启动中...")
    print(f"工作目录: {WORK_DIR}")
    print(f"数据存储: {settings.storage_dir}")
    print("=" * 60)

    uvicorn.run(
        app,
        host=os.environ.get("ARTICLE_FORGE_HOST", "127.0.0.1"),
        port=int(os.environ.get("ARTICLE_FORGE_PORT", "8123")),
        log_level="info",
        access_log=True
    )


if __name__ == "__main__":
    main()
