from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, Float, ForeignKey, JSON,
    CheckConstraint, UniqueConstraint, Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

ALL_CATEGORIES = "all"

# Agents working in several categories (e.g. "Comercial" and "Suporte")
user_categories = Table(
    "user_categories",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    users = relationship("User", back_populates="company")
    categories = relationship("Category", back_populates="company")
    criteria = relationship("Criterion", back_populates="company")
    alert_settings = relationship("AlertSettings", back_populates="company", uselist=False)

class Category(Base):
    """Company-defined grouping of agents and criteria ("Suporte", "Comercial")."""
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("company_id", "key", name="uq_categories_company_key"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    key = Column(String(100), nullable=False)  # normalized name
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="categories")

class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("company_id", "username", name="uq_users_company_username"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    username = Column(String(255), nullable=False)
    display_name = Column(String(255))
    phone_number = Column(String(50))
    role = Column(String(50), default="agent")  # admin_manager, agent
    # Free-text category kept for records that predate the categories table
    custom_role_name = Column(String(100))
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    company = relationship("Company", back_populates="users")
    category = relationship("Category")
    categories = relationship("Category", secondary=user_categories, order_by="Category.id")

    def category_names(self):
        """Names of every category the agent works in, primary category first."""
        names = [self.category.name] if self.category is not None else []
        for category in self.categories:
            if category.name not in names:
                names.append(category.name)
        return names

class Criterion(Base):
    __tablename__ = "criteria"
    __table_args__ = (CheckConstraint("weight > 0", name="ck_criteria_weight_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    weight = Column(Integer, nullable=False, default=1)
    # NULL category applies to every category
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    company = relationship("Company", back_populates="criteria")
    category_ref = relationship("Category")

    @property
    def category(self) -> str:
        return self.category_ref.name if self.category_ref is not None else ALL_CATEGORIES

class Call(Base):
    __tablename__ = "calls"
    __table_args__ = (
        UniqueConstraint("company_id", "external_call_id", name="uq_calls_company_external_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("users.id"), index=True)
    external_call_id = Column(String(255))
    phone_number = Column(String(50))
    direction = Column(String(20), default="inbound")  # inbound, outbound, meeting
    duration_seconds = Column(Integer, default=0)
    audio_file_path = Column(String(500))
    transcription = Column(Text)
    transcription_timestamps = Column(JSON)
    summary = Column(Text)
    next_step_recommendation = Column(Text)
    final_score = Column(Float)
    score_justification = Column(Text)
    what_went_well = Column(JSON)
    what_went_wrong = Column(JSON)
    risk_words_detected = Column(JSON)
    # Set only when the agent works in several categories
    detected_category = Column(String(100), index=True)
    call_date = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    agent = relationship("User")
    criteria_results = relationship(
        "CallCriterionResult", back_populates="call",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="CallCriterionResult.id",
    )
    alerts = relationship(
        "Alert", back_populates="call",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Alert.id",
    )
    feedback = relationship(
        "CallFeedback", back_populates="call",
        cascade="all, delete-orphan", passive_deletes=True,
    )

class CallCriterionResult(Base):
    __tablename__ = "call_criteria_results"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(Integer, ForeignKey("calls.id", ondelete="CASCADE"), nullable=False, index=True)
    # Kept as NULL with the name snapshot when the criterion is deleted
    criterion_id = Column(Integer, ForeignKey("criteria.id", ondelete="SET NULL"))
    criterion_name = Column(String(255))
    passed = Column(Boolean, default=False, nullable=False)
    justification = Column(Text)
    timestamp_reference = Column(String(20))

    call = relationship("Call", back_populates="criteria_results")

class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    call_id = Column(Integer, ForeignKey("calls.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("users.id"), index=True)
    type = Column(String(30), nullable=False)  # low_score, risk_words, long_duration, no_next_step
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    call = relationship("Call", back_populates="alerts")

class CallFeedback(Base):
    __tablename__ = "call_feedback"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(Integer, ForeignKey("calls.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    call = relationship("Call", back_populates="feedback")

class AlertSettings(Base):
    """Per-company alert overrides; companies without a row use the environment defaults."""
    __tablename__ = "alert_settings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True)
    low_score_enabled = Column(Boolean, default=True, nullable=False)
    low_score_threshold = Column(Float)
    risk_words_enabled = Column(Boolean, default=True, nullable=False)
    risk_words_list = Column(Text)  # comma-separated
    long_duration_enabled = Column(Boolean, default=True, nullable=False)
    long_duration_threshold_minutes = Column(Integer)
    no_next_step_enabled = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="alert_settings")
