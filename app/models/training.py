"""
Training Matrix Platform
Training compliance models — read side of the training matrix.

Models:
    - Department: organizational unit a person belongs to
    - Role: job role, optionally scoped to a department
    - User: person whose training compliance is tracked
    - Module: training module (matrix column, kind "module")
    - Document: controlled document that must be acknowledged (kind "document")
    - UserAssignment: active training assignment (current record)
    - UserTrainingCompletion: completion preserved from a previous role
      (historical record)

Natural identifiers (User.auth_id, Module.ref_id, Document.ref_id) are
nullable because legacy imports left gaps. Assignment rows reference them
loosely (no FK) so a missing or dangling reference never blocks a read.
"""

from datetime import datetime, timezone

from app.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Department(db.Model):
    """Organizational department used by the matrix department filter."""

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    roles = db.relationship("Role", backref="department", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


class Role(db.Model):
    """Job role. ``department_id`` narrows role options once a department is picked."""

    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {"id": self.id, "title": self.title, "department_id": self.department_id}

    def __repr__(self):
        return f"<Role {self.id}: {self.title}>"


class User(db.Model):
    """A person on the training matrix."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    auth_id = db.Column(
        db.String(64), nullable=True, index=True,
        comment="Identity-provider id; assignments reference this value",
    )
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True,
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "auth_id": self.auth_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "department_id": self.department_id,
            "role_id": self.role_id,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.full_name}>"


class Module(db.Model):
    """Training module."""

    __tablename__ = "modules"

    id = db.Column(db.Integer, primary_key=True)
    ref_id = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {"id": self.id, "ref_id": self.ref_id, "name": self.name}

    def __repr__(self):
        return f"<Module {self.ref_id}: {self.name}>"


class Document(db.Model):
    """Controlled document requiring read-and-understood sign-off."""

    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    ref_id = db.Column(db.String(64), nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {"id": self.id, "ref_id": self.ref_id, "title": self.title}

    def __repr__(self):
        return f"<Document {self.ref_id}: {self.title}>"


class UserAssignment(db.Model):
    """Active assignment of a module or document to a person.

    ``completed_at`` NULL means the assignment is still outstanding.
    """

    __tablename__ = "user_assignments"
    __table_args__ = (
        db.Index("ix_user_assignments_auth_item", "auth_id", "item_id", "item_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    auth_id = db.Column(db.String(64), nullable=True)
    item_id = db.Column(db.String(64), nullable=True)
    item_type = db.Column(db.String(20), nullable=False, comment="module | document")
    assigned_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "auth_id": self.auth_id,
            "item_id": self.item_id,
            "item_type": self.item_type,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<UserAssignment {self.auth_id}|{self.item_id}|{self.item_type}>"


class UserTrainingCompletion(db.Model):
    """Completion kept after the assignment that produced it was removed.

    Written when a role change drops an item from a person's assignment set,
    so the audit trail survives. Not provisioned in every deployment.
    """

    __tablename__ = "user_training_completions"
    __table_args__ = (
        db.Index("ix_user_training_completions_auth_item", "auth_id", "item_id", "item_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    auth_id = db.Column(db.String(64), nullable=True)
    item_id = db.Column(db.String(64), nullable=True)
    item_type = db.Column(db.String(20), nullable=False, comment="module | document")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "auth_id": self.auth_id,
            "item_id": self.item_id,
            "item_type": self.item_type,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
        }

    def __repr__(self):
        return f"<UserTrainingCompletion {self.auth_id}|{self.item_id}|{self.item_type}>"
