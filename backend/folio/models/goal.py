from sqlalchemy import Column, Date, Numeric, String, Text
from folio.core.database import Base
from folio.models.base import IdMixin, TimestampMixin

class Goal(Base, IdMixin, TimestampMixin):
    """
    Financial goal with a target amount and deadline.
    """
    __tablename__ = "goals"

    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    target_amount = Column(Numeric(18, 2), nullable=False)
    current_amount = Column(Numeric(18, 2), nullable=False, default=0)
    deadline = Column(Date, nullable=False)
    priority = Column(String(10), nullable=False, default="medium")
    goal_type = Column(String(20), nullable=False, default="other")
    linked_symbol = Column(String(20))
