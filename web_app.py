"""Flask Web 前端 - 驾驶员困倦监测系统"""

import datetime
import logging
import threading
import time

import cv2
from flask import Flask, Response, jsonify, render_template, request

from display.renderer import DisplayRenderer
from models.data_models import AlertVerdict, SessionSnapshot, SessionState, SkipReason
from session.config import DEFAULTS
from session.monitor import MonitoringSession

logger = logging.getLogger(__name__)

app = Flask(__name__, template_folder="web/templates", static_folder="web/static")


class WebDetectionSystem:
    """Web 版检测系统，支持 MJPEG 视频流推送和实时数据 API。报警声由浏览器播放。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, config=None, **session_kwargs):
        self._lock = threading.Lock()
        self._latest_frame = None
        self._latest_data = {
            "ear": 0.0, "frame_count": 0,
            "eye_closed": False, "face_detected": False,
        }
        self._logs = []
        self._log_lock = threading.Lock()
        self._face_detected = True

        config = dict(config or DEFAULTS)
        self.renderer = DisplayRenderer(mirror=config["mirror"])
        self.session = MonitoringSession(config, on_frame=self._on_frame, **session_kwargs)
        self._prev = self.session.snapshot()
        self.session.machine.subscribe(self._on_state_change)

    def start(self):
        """启动监测，返回是否进入 Active。"""
        snapshot = self.session.snapshot()
        if snapshot.state is SessionState.ERROR:
            self.session.retry()
        else:
            self.session.start()
        return self.session.snapshot().state is SessionState.ACTIVE

    def stop(self):
        """停止检测。"""
        self.session.stop()
        with self._lock:
            self._latest_frame = None
            self._latest_data = {
                "ear": 0.0, "frame_count": 0,
                "eye_closed": False, "face_detected": False,
            }

    def retry(self):
        self.session.retry()
        return self.session.snapshot().state is SessionState.ACTIVE

    def _on_frame(self, frame, landmarks, result):
        """调度线程回调：渲染并缓存最新一帧及其数据。"""
        rendered = self.renderer.render(frame, landmarks, result, self.session.snapshot())
        _, jpeg = cv2.imencode(".jpg", rendered, [cv2.IMWRITE_JPEG_QUALITY, 80])

        face_detected = result.skipped is not SkipReason.NO_FACE
        with self._lock:
            self._latest_frame = jpeg.tobytes()
            if result.eye is not None:
                self._latest_data = {
                    "ear": round(result.eye.ear, 4),
                    "frame_count": result.eye.frame_count,
                    "eye_closed": result.eye.is_closed,
                    "face_detected": True,
                }
            else:
                self._latest_data = dict(self._latest_data, face_detected=face_detected)

        self._check_face_change(face_detected)

    def _check_face_change(self, face_detected):
        if face_detected and not self._face_detected:
            self._add_log("info", "检测到人脸")
        elif not face_detected and self._face_detected:
            self._add_log("warning", "人脸丢失")
        self._face_detected = face_detected

    def _on_state_change(self, snapshot: SessionSnapshot):
        """状态机回调：把状态变化写入系统日志。"""
        prev = self._prev
        self._prev = snapshot

        if prev.state is not snapshot.state:
            if snapshot.state is SessionState.LOADING:
                self._add_log("info", "正在初始化摄像头与模型")
            elif snapshot.state is SessionState.ACTIVE:
                self._face_detected = True
                self._add_log("info", "系统启动，摄像头已开启")
            elif snapshot.state is SessionState.IDLE:
                self._add_log("info", "系统已停止")
            elif snapshot.state is SessionState.ERROR and snapshot.error is not None:
                self._add_log("danger", f"初始化失败: {snapshot.error.message}")

        if prev.verdict is not snapshot.verdict:
            if snapshot.verdict is AlertVerdict.DROWSY:
                self._add_log("danger", "⚠️ 检测到持续闭眼，疲劳驾驶警告！")
            elif snapshot.state is SessionState.ACTIVE:
                self._add_log("info", "睁眼恢复，警告解除")

        if prev.muted != snapshot.muted:
            self._add_log("info", "报警已静音" if snapshot.muted else "报警声已开启")

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    def get_frame(self):
        with self._lock:
            return self._latest_frame

    def get_data(self):
        with self._lock:
            data = dict(self._latest_data)
        data.update(self.session.snapshot().to_dict())
        data["ear_threshold"] = self.session.config["ear_threshold"]
        data["consec_frames"] = self.session.config["consec_frames"]
        return data

    def update_config(self, config):
        """动态更新阈值配置。"""
        return self.session.update_config(config)


# 全局检测系统实例
system = WebDetectionSystem()


# ---- Flask 路由 ----

@app.route("/")
def index():
    return render_template("index.html")


@app.route("/api/start", methods=["POST"])
def api_start():
    ok = system.start()
    data = system.get_data()
    message = "监测已启动" if ok else (data.get("error_message") or "无法启动监测")
    return jsonify({"success": ok, "message": message, "state": data["state"]})


@app.route("/api/retry", methods=["POST"])
def api_retry():
    ok = system.retry()
    data = system.get_data()
    message = "监测已启动" if ok else (data.get("error_message") or "当前状态无需重试")
    return jsonify({"success": ok, "message": message, "state": data["state"]})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    system.stop()
    return jsonify({"success": True, "message": "检测已停止"})


@app.route("/api/mute", methods=["POST"])
def api_mute():
    data = request.get_json(silent=True) or {}
    if "muted" in data:
        system.session.set_muted(bool(data["muted"]))
    else:
        system.session.toggle_mute()
    return jsonify({"success": True, "muted": system.session.snapshot().muted})


@app.route("/api/state")
def api_state():
    return jsonify(system.get_data())


@app.route("/api/config", methods=["POST"])
def api_config():
    data = request.get_json(force=True)
    try:
        config = system.update_config(data)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return jsonify({
        "success": True,
        "message": "配置已更新",
        "ear_threshold": config["ear_threshold"],
        "consec_frames": config["consec_frames"],
    })


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = system.get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/video_feed")
def video_feed():
    def generate():
        while True:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
