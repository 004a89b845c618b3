"""Repository layer modules."""

from app.repositories.batch_process_repository import BatchProcessRepository
from app.repositories.detection_history_repository import DetectionHistoryRepository
from app.repositories.detection_rule_repository import DetectionRuleRepository
from app.repositories.work_order_repository import WorkOrderRepository

__all__ = [
    "BatchProcessRepository",
    "DetectionHistoryRepository",
    "DetectionRuleRepository",
    "WorkOrderRepository",
]
