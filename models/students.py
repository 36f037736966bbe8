from sqlalchemy import Column, Integer, String
from database.db import Base

class Student(Base):
    __tablename__ = "students"  # student master records

    id = Column(Integer, primary_key=True, index=True)               # student ID (Primary Key)
    organization_id = Column(String(64), index=True)                 # owning organization (opaque)
    first_name = Column(String(100))                                 # first name
    last_name = Column(String(100))                                  # last name
    student_number = Column(String(50))                              # LRN / student number
