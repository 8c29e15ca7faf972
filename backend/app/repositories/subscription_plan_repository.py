from uuid import UUID

from sqlalchemy.orm import Session

from app.models.subscription_plan import SubscriptionPlan


class SubscriptionPlanRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None:
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    def get_by_ids(self, plan_ids: list[UUID]) -> dict[UUID, SubscriptionPlan]:
        if not plan_ids:
            return {}
        plans = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id.in_(plan_ids)).all()
        return {plan.id: plan for plan in plans}  # type: ignore[misc]

    def get_default(self) -> SubscriptionPlan | None:
        """Return the active default plan, if any."""
        return (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_default.is_(True), SubscriptionPlan.is_active.is_(True))
            .first()
        )
