from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    weight_unit: Mapped[str] = mapped_column(String(8), nullable=False, default="lbs")
    sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    goals_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_goal: Mapped[Optional[str]] = mapped_column(String(280), nullable=True)
    training_split: Mapped[Optional[str]] = mapped_column(String(280), nullable=True)
    coach_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    subscription_status: Mapped[str] = mapped_column(String(16), nullable=False, default="trial")
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    subscription_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    billing_customer_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    exercises: Mapped[list["Exercise"]] = relationship(
        "Exercise", back_populates="user", cascade="all, delete-orphan"
    )
    sets: Mapped[list["WorkoutSet"]] = relationship(
        "WorkoutSet", back_populates="user", cascade="all, delete-orphan"
    )
    reports: Mapped[list["ReportRecord"]] = relationship(
        "ReportRecord", back_populates="user", cascade="all, delete-orphan"
    )


class Exercise(Base):
    __tablename__ = "exercises"
    __table_args__ = (Index("ix_exercises_user_name", "user_id", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    muscle_groups_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="exercises")
    sets: Mapped[list["WorkoutSet"]] = relationship("WorkoutSet", back_populates="exercise")


class WorkoutSet(Base):
    __tablename__ = "workout_sets"
    __table_args__ = (
        Index("ix_sets_user_performed", "user_id", "performed_at"),
        Index("ix_sets_exercise_performed", "exercise_id", "performed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    exercise_id: Mapped[int] = mapped_column(ForeignKey("exercises.id"), nullable=False, index=True)
    reps: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="sets")
    exercise: Mapped[Exercise] = relationship("Exercise", back_populates="sets")


class ReportRecord(Base):
    __tablename__ = "report_records"
    __table_args__ = (Index("ix_reports_user_generated", "user_id", "generated_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    report_type: Mapped[str] = mapped_column(String(16), nullable=False, default="weekly")
    report_version: Mapped[str] = mapped_column(String(16), nullable=False, default="1.0")
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user: Mapped[User] = relationship("User", back_populates="reports")
