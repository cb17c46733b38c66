from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import inspect
from sqlalchemy.orm.exc import DetachedInstanceError
from werkzeug.security import check_password_hash, generate_password_hash

from stockroom.extensions import db


def _isoformat(value):
    return value.isoformat() if value is not None else None


class Category(db.Model):
    __tablename__ = "category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)
    parent_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    parent = db.relationship("Category", remote_side=[id], backref="children")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "created_at": _isoformat(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Category {self.name}>"


class Item(db.Model):
    __tablename__ = "item"

    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_item_quantity_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("category.id"), nullable=False, index=True
    )
    # Only the stock ledger writes ``quantity``; ``initial_quantity`` is
    # frozen at creation so the ledger can always be reconciled against it.
    quantity = db.Column(db.Integer, nullable=False, default=0)
    initial_quantity = db.Column(db.Integer, nullable=False, default=0)
    location = db.Column(db.String(255), nullable=True, index=True)
    description = db.Column(db.Text)
    properties = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    category = db.relationship("Category", backref="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "quantity": self.quantity,
            "initial_quantity": self.initial_quantity,
            "location": self.location,
            "description": self.description,
            "properties": dict(self.properties or {}),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Item {self.id} {self.name} qty={self.quantity}>"


class Transaction(db.Model):
    __tablename__ = "stock_transaction"

    TYPE_WITHDRAWAL = "withdrawal"
    TYPE_ADDITION = "addition"
    TYPES = (TYPE_WITHDRAWAL, TYPE_ADDITION)

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_transaction_quantity_positive"),
        db.CheckConstraint(
            "type IN ('withdrawal', 'addition')", name="ck_stock_transaction_type"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("item.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    purpose = db.Column(db.Text)
    user_name = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    # ledger rows are never deleted with their item
    item = db.relationship("Item", backref="transactions")

    @property
    def signed_quantity(self) -> int:
        if self.type == self.TYPE_WITHDRAWAL:
            return -self.quantity
        return self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "type": self.type,
            "quantity": self.quantity,
            "purpose": self.purpose,
            "user_name": self.user_name,
            "created_at": _isoformat(self.created_at),
        }


class PurchaseRequest(db.Model):
    __tablename__ = "purchase_request"

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]
    TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_CANCELLED}
    # Manual transitions; ``completed`` is only reached through fulfillment.
    ALLOWED_TRANSITIONS = {
        STATUS_PENDING: {STATUS_APPROVED, STATUS_CANCELLED},
        STATUS_APPROVED: {STATUS_CANCELLED},
    }

    __table_args__ = (
        db.CheckConstraint("units_count >= 1", name="ck_purchase_request_units_count"),
        db.CheckConstraint(
            "completed_units >= 0", name="ck_purchase_request_completed_units"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=False)
    units_count = db.Column(db.Integer, nullable=False, default=1)
    completed_units = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    description = db.Column(db.Text)
    deadline = db.Column(db.Date, nullable=True)
    requester = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    completed_at = db.Column(db.DateTime, nullable=True)

    category = db.relationship("Category")

    @classmethod
    def status_values(cls) -> list[str]:
        return [value for value, _ in cls.STATUS_CHOICES]

    @property
    def status_label(self) -> str:
        return dict(self.STATUS_CHOICES).get(self.status, self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "units_count": self.units_count,
            "completed_units": self.completed_units,
            "status": self.status,
            "status_label": self.status_label,
            "description": self.description,
            "deadline": _isoformat(self.deadline),
            "requester": self.requester,
            "notes": self.notes,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "completed_at": _isoformat(self.completed_at),
        }


class PurchaseItemMapping(db.Model):
    __tablename__ = "purchase_item_mapping"

    id = db.Column(db.Integer, primary_key=True)
    purchase_request_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(
        db.Integer, db.ForeignKey("item.id", ondelete="CASCADE"), nullable=False
    )
    quantity_added = db.Column(db.Integer, nullable=False)
    added_by = db.Column(db.String(255))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    purchase_request = db.relationship(
        "PurchaseRequest",
        backref=db.backref("item_mappings", cascade="all, delete-orphan"),
    )
    item = db.relationship(
        "Item",
        backref=db.backref("purchase_mappings", cascade="all, delete-orphan"),
    )


class Preset(db.Model):
    __tablename__ = "preset"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    items = db.relationship(
        "PresetItem",
        back_populates="preset",
        cascade="all, delete-orphan",
        order_by="PresetItem.id",
    )

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": _isoformat(self.created_at),
        }
        if include_items:
            data["items"] = [preset_item.to_dict() for preset_item in self.items]
        return data


class PresetItem(db.Model):
    __tablename__ = "preset_item"

    __table_args__ = (
        db.CheckConstraint("quantity_needed >= 1", name="ck_preset_item_quantity_needed"),
    )

    id = db.Column(db.Integer, primary_key=True)
    preset_id = db.Column(
        db.Integer, db.ForeignKey("preset.id", ondelete="CASCADE"), nullable=False
    )
    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=False)
    quantity_needed = db.Column(db.Integer, nullable=False, default=1)
    requirements = db.Column(db.Text)
    notes = db.Column(db.Text)

    preset = db.relationship("Preset", back_populates="items")
    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "preset_id": self.preset_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "quantity_needed": self.quantity_needed,
            "requirements": self.requirements,
            "notes": self.notes,
        }


class PresetWithdrawalMapping(db.Model):
    __tablename__ = "preset_withdrawal_mapping"

    id = db.Column(db.Integer, primary_key=True)
    preset_id = db.Column(
        db.Integer,
        db.ForeignKey("preset.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(
        db.Integer, db.ForeignKey("item.id", ondelete="CASCADE"), nullable=False
    )
    quantity_withdrawn = db.Column(db.Integer, nullable=False)
    withdrawn_by = db.Column(db.String(255))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    preset = db.relationship(
        "Preset",
        backref=db.backref("withdrawal_mappings", cascade="all, delete-orphan"),
    )
    item = db.relationship(
        "Item",
        backref=db.backref("preset_withdrawals", cascade="all, delete-orphan"),
    )


user_roles = db.Table(
    "user_role",
    db.Column("user_id", db.Integer, db.ForeignKey("user.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("role.id"), primary_key=True),
)


class Role(db.Model):
    __tablename__ = "role"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255))

    users = db.relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Role {self.name}>"


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)
    full_name = db.Column(db.String(255))
    password_hash = db.Column(db.String(255), nullable=False)
    # Named ``active`` so it does not shadow ``UserMixin.is_active``.
    active = db.Column("is_active", db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    roles = db.relationship(
        "Role",
        secondary=user_roles,
        back_populates="users",
        lazy="joined",
    )

    @property
    def is_active(self) -> bool:
        return bool(self.active)

    @property
    def primary_role(self) -> str | None:
        names = sorted(role.name for role in self.roles)
        if "admin" in names:
            return "admin"
        return names[0] if names else None

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_role(self, role_name: str) -> bool:
        return self.has_any_role((role_name,))

    def has_any_role(self, role_names) -> bool:
        if not role_names:
            return False

        try:
            role_name_set = {role.name for role in self.roles}
        except DetachedInstanceError:
            identity = inspect(self).identity
            if not identity:
                return False
            refreshed = db.session.get(User, identity[0])
            if refreshed is None:
                return False
            return refreshed.has_any_role(role_names)

        return any(name in role_name_set for name in role_names)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.primary_role,
            "roles": sorted(role.name for role in self.roles),
            "is_active": self.is_active,
            "last_login": _isoformat(self.last_login),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User {self.username}>"
