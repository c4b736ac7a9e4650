"""Web 界面启动器：检查依赖、打开浏览器并运行 Flask 服务"""

import argparse
import importlib.util
import logging
import os
import sys
import threading
import webbrowser

# 依赖包名 -> 导入名
REQUIRED = {
    "flask": "flask",
    "opencv-python": "cv2",
    "mediapipe": "mediapipe",
    "numpy": "numpy",
    "pillow": "PIL",
}


def missing_dependencies():
    """返回未安装的依赖包名列表"""
    return [pkg for pkg, name in REQUIRED.items() if importlib.util.find_spec(name) is None]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="驾驶员困倦监测 Web 界面")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--no-browser", action="store_true", help="不自动打开浏览器")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("start")

    missing = missing_dependencies()
    if missing:
        logger.error("缺少依赖: %s，请先执行 pip install -e . 安装", ", ".join(missing))
        return 1

    # 模板路径相对于脚本目录
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    url = f"http://localhost:{args.port}"
    if not args.no_browser:
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()
    logger.info("服务已启动: %s （Ctrl+C 停止）", url)

    from web_app import app
    app.run(host=args.host, port=args.port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
