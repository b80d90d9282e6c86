from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from infra.db.session import Base

class ProjectRecord(Base):
    __tablename__ = "projects"
    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="draft")
    job_description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    role_definition = relationship("RoleDefinitionRecord", back_populates="project", uselist=False)

class RoleDefinitionRecord(Base):
    __tablename__ = "role_definitions"
    id = Column(String, primary_key=True)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, unique=True)
    definition_data = Column(JSON, nullable=False)
    context_flags = Column(JSON, nullable=False)
    clarifier_questions = Column(JSON, nullable=True)
    clarifier_answers = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    project = relationship("ProjectRecord", back_populates="role_definition")
    scaffold = relationship("AuditionScaffoldRecord", back_populates="role_definition", uselist=False)

class AuditionScaffoldRecord(Base):
    __tablename__ = "audition_scaffolds"
    id = Column(String, primary_key=True)
    role_definition_id = Column(String, ForeignKey("role_definitions.id"), nullable=False, unique=True)
    bank_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="GENERATING")  # GENERATING | READY | FAILED
    attempt = Column(Integer, nullable=False, default=1)
    chosen_dimensions = Column(JSON, nullable=True)
    dimension_justification = Column(Text, nullable=True)
    scaffold_data = Column(JSON, nullable=True)
    scaffold_preview_html = Column(Text, nullable=True)
    questions = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    role_definition = relationship("RoleDefinitionRecord", back_populates="scaffold")
