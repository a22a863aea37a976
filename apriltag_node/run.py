import argparse
import signal
import sys

from .config import NodeConfig, load_config
from .control import MqttParameterChannel, parse_assignments
from .output import CsvOutput, MqttOutput, make_mqtt_client
from .worker import CameraWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Detect AprilTags and estimate their pose for one camera")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config (ROS parameter files accepted)")

    ap.add_argument("--camera-name")
    ap.add_argument("--frame-id")
    ap.add_argument("--family")
    ap.add_argument("--size", type=float)
    ap.add_argument("--calib")
    ap.add_argument("--images", help="Folder of rectified frames")
    ap.add_argument("--out")
    ap.add_argument("--duration", type=float)
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--no-csv", action="store_true")
    ap.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    ap.add_argument("--mqtt-host")
    ap.add_argument("--mqtt-port", type=int)
    ap.add_argument("--topic-prefix")
    ap.add_argument(
        "--set",
        dest="updates",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Parameter update applied before the first frame, e.g. --set detector.decimate=1.0",
    )

    return ap


def _apply_args(cfg: NodeConfig, args: argparse.Namespace) -> NodeConfig:
    cfg.apply_overrides(
        camera_name=args.camera_name,
        frame_id=args.frame_id,
        family=args.family,
        size=args.size,
        calibration_path=args.calib,
        session_root=args.out,
        duration_sec=args.duration,
        max_frames=args.max_frames,
        dry_run=args.dry_run if args.dry_run else None,
        save_csv=False if args.no_csv else None,
        log_level=args.log_level,
    )
    if args.images:
        cfg.source.type = "images"
        cfg.source.path = args.images
    if args.mqtt_host:
        cfg.mqtt.enabled = True
        cfg.mqtt.host = args.mqtt_host
    if args.mqtt_port:
        cfg.mqtt.port = args.mqtt_port
    if args.topic_prefix:
        cfg.mqtt.topic_prefix = args.topic_prefix
    return cfg


def main() -> int:
    ap = _build_parser()
    args = ap.parse_args()

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)
    updates = parse_assignments(args.updates)

    outputs = [CsvOutput()] if cfg.save_csv else []
    client = None
    if cfg.mqtt.enabled:
        client = make_mqtt_client(cfg.mqtt.host, cfg.mqtt.port, client_id=f"apriltag-{cfg.camera_name}")
        outputs.append(MqttOutput(client, cfg.mqtt.topic_prefix, cfg.mqtt.qos))

    worker = CameraWorker(cfg, outputs=outputs)
    if updates:
        worker.reconfigure(updates)

    channel = None
    if client is not None:
        if cfg.mqtt.control:
            channel = MqttParameterChannel(client, worker.reconfigure, cfg.mqtt.topic_prefix, cfg.mqtt.qos, worker.logger)
            channel.start()
        client.loop_start()

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = worker.run()
    finally:
        if channel is not None:
            channel.stop()
        if client is not None:
            client.loop_stop()
            client.disconnect()

    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
