# app/models/company_holiday.py
from sqlalchemy import Column, Date, Integer, String

from app.models.base import Base


class CompanyHoliday(Base):
    """A date on which no host can be booked."""

    __tablename__ = "company_holidays"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
