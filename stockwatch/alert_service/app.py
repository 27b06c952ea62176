# stockwatch/alert_service/app.py
import os
import atexit

from flask import Flask, jsonify

from stockwatch.shared.logging_setup import setup_logging

# --- 1. Initialize Flask App and Basic Config ---
app = Flask(__name__)
PORT = int(os.getenv("PORT", 3003))
ALERT_SCHEDULER_ENABLED = os.getenv("ALERT_SCHEDULER_ENABLED", "1") == "1"

# --- 2. Logging ---
setup_logging(
    app,
    "alert-service",
    module_names=[
        "stockwatch.alert_service.scheduler",
        "stockwatch.alert_service.services.alert_evaluator",
        "stockwatch.alert_service.services.downstream_clients",
        "apscheduler",
    ],
)

# --- 3. Import Project-Specific Modules ---
from stockwatch.alert_service.scheduler import (
    CycleInProgressError,
    SchedulerStoppedError,
    build_default_scheduler,
)

alert_scheduler = build_default_scheduler()


@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({
        "status": "healthy",
        "service": "alert-service",
        "scheduler_running": bool(alert_scheduler.scheduler.running),
    }), 200


@app.route('/alerts/check/run', methods=['POST'])
def run_alert_check():
    """Runs one evaluation cycle synchronously; 409 while a scheduled or manual cycle is in flight."""
    try:
        summary = alert_scheduler.run_exclusive()
    except CycleInProgressError as e:
        return jsonify({"error": str(e)}), 409
    except SchedulerStoppedError as e:
        return jsonify({"error": str(e)}), 503
    except Exception as e:
        app.logger.error(f"Manual alert check failed: {e}", exc_info=True)
        return jsonify({"error": "Alert check failed", "details": str(e)}), 500
    status_code = 502 if summary.aborted else 200
    return jsonify(summary.model_dump()), status_code


def main():
    if ALERT_SCHEDULER_ENABLED:
        alert_scheduler.start()
        atexit.register(alert_scheduler.stop)
    else:
        app.logger.warning("ALERT_SCHEDULER_ENABLED=0: alerts are only evaluated via POST /alerts/check/run")
    app.logger.info("Alert Service Started. Checking alerts every minute...")
    # the reloader would start a second scheduler in the child process
    app.run(host='0.0.0.0', port=PORT, use_reloader=False)


if __name__ == '__main__':
    main()
