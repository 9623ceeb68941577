"""
Structured logging for recorder, learner and ranking operations.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for event, weight, learner and heartbeat operations."""

    def __init__(self, name: str = "fleetfit"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "rejected", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_event_recorded(self, event_id: str, event_type: str, driver_id: str, status: str = "success",
                           details: Dict[str, Any] = None):
        """Log an event append."""
        log_details = {"event_id": event_id, "event_type": event_type, "driver_id": driver_id}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation("events.record", status, log_details)

    def log_weights_replaced(self, run_id: str, names: List[str], status: str = "success"):
        """Log an atomic weight vector replacement."""
        self.log_operation("weights.replace_all", status, {
            "run_id": run_id,
            "count": len(names),
            "names": sorted(names)
        })

    def log_learner_run(self, run_id: str, start_time: float, end_time: float, status: str = "success",
                        details: Dict[str, Any] = None):
        """Log learner run execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"run_id": run_id, "duration_ms": duration_ms}
        if details:
            log_details.update(details)

        self.log_operation("learner.run", status, log_details)

    def log_ranking(self, load_id: str, candidates: int, returned: int, baseline: bool):
        """Log a ranking request."""
        self.log_operation("scorer.rank", "success", {
            "load_id": load_id,
            "candidates": candidates,
            "returned": returned,
            "baseline": baseline
        })

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success",
                           details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        self.log_operation(f"heartbeat.{task_name}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, max_len: int = 100) -> Any:
    """Truncate long strings in payloads before they reach the log."""
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, max_len) for k, v in payload.items()}
    elif isinstance(payload, str):
        return payload[:max_len] + "..." if len(payload) > max_len else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_len) for item in payload]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()
