"""
branchdesk - Dataset Schema Registry

Static catalog of the document shapes the intake pipeline knows how to
ingest. Each schema lists its required and optional canonical fields and,
per field, the header spellings seen in real exports (English and Spanish
variants from POS, payroll and supplier systems).

Changing this table requires a deploy; there is no runtime registration.

Usage:
    from branchdesk.ingest.schemas import DatasetKind, get_schema

    schema = get_schema(DatasetKind.ROSTER)
    schema.required_fields  # ('personal_identification_number', ...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Tuple


class DatasetKind(str, Enum):
    """Document types the registry can ingest."""

    ROSTER = "roster"
    ATTENDANCE = "attendance"
    PAYROLL_LINES = "payroll_lines"
    SALES = "sales"
    PURCHASES = "purchases"


@dataclass(frozen=True)
class DatasetSchema:
    """Immutable description of one ingestible document shape."""

    name: str
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...] = ()
    aliases_by_field: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aliases_by_field", MappingProxyType(dict(self.aliases_by_field)))
        for required in self.required_fields:
            if not self.aliases_by_field.get(required):
                raise ValueError(
                    f"Schema '{self.name}': required field '{required}' has no aliases"
                )

    @property
    def all_fields(self) -> Tuple[str, ...]:
        """Required fields first, then optional, in declaration order."""
        return self.required_fields + self.optional_fields

    def aliases_for(self, field_name: str) -> Tuple[str, ...]:
        return self.aliases_by_field.get(field_name, ())


# =============================================================================
# Registry
# =============================================================================

ROSTER_SCHEMA = DatasetSchema(
    name="Employee roster",
    required_fields=(
        "personal_identification_number",
        "first_name",
        "last_name",
        "employee_role",
        "is_active",
    ),
    optional_fields=(
        "email",
        "home_phone",
        "mobile_phone",
        "address",
        "birth_date",
        "emergency_contact",
        "phone_contact",
    ),
    aliases_by_field={
        "personal_identification_number": (
            "personal identification number",
            "personal_identification_number",
            "cedula",
            "id_number",
            "identification",
            "dni",
            "document_number",
        ),
        "first_name": ("name", "first_name", "nombre", "firstname", "given_name"),
        "last_name": ("lastname", "last_name", "apellido", "surname", "family_name"),
        "email": ("email", "correo", "mail", "email_address", "e_mail"),
        "employee_role": (
            "employee rol",
            "employee_role",
            "rol",
            "role",
            "position",
            "cargo",
            "puesto",
        ),
        "is_active": ("active? (yes/no)", "active", "is_active", "activo", "status", "estado"),
        "home_phone": ("home phone", "home_phone", "telefono_casa", "phone_home"),
        "mobile_phone": ("mobile phone", "mobile_phone", "celular", "movil", "cell_phone"),
        "address": ("address", "direccion", "domicilio", "location"),
        "birth_date": (
            "birth date (yyyy-mm-dd)",
            "birth_date",
            "fecha_nacimiento",
            "birthdate",
            "date_of_birth",
        ),
        "emergency_contact": (
            "emergency contact",
            "emergency_contact",
            "contacto_emergencia",
            "emergency_name",
        ),
        "phone_contact": (
            "phone contact",
            "phone_contact",
            "telefono_contacto",
            "emergency_phone",
        ),
    },
)

ATTENDANCE_SCHEMA = DatasetSchema(
    name="Employee attendance",
    required_fields=("employee",),
    optional_fields=("total_hours", "days_worked"),
    aliases_by_field={
        "employee": (
            "empleado",
            "employee",
            "name",
            "nombre",
            "emp_name",
            "worker",
            "empleado_nombre",
        ),
        "total_hours": (
            "total_horas",
            "total_hours",
            "horas_totales",
            "hours_total",
            "total",
            "sum",
            "suma",
            "horas",
        ),
        "days_worked": (
            "dias_trabajados",
            "days_worked",
            "working_days",
            "dias",
            "days",
            "dias_laborados",
        ),
    },
)

PAYROLL_LINES_SCHEMA = DatasetSchema(
    name="Payroll lines",
    required_fields=("employee", "code", "amount"),
    optional_fields=("qty", "cost_center"),
    aliases_by_field={
        "employee": (
            "empleado",
            "employee",
            "name",
            "nombre",
            "emp_name",
            "d code",
            "dcode",
            "employee_name",
            "worker",
        ),
        "code": (
            "codigo",
            "code",
            "d code",
            "dcode",
            "emp_code",
            "employee_code",
            "id",
            "emp_id",
            "personal identification number",
            "identification",
        ),
        "amount": (
            "monto",
            "amount",
            "salary",
            "salario",
            "total",
            "pay",
            "payment",
            "wage",
            "wages",
            "sueldo",
        ),
        "qty": ("qty", "quantity", "cantidad", "hours", "horas", "dias", "days"),
        "cost_center": (
            "centro",
            "center",
            "cost_center",
            "department",
            "dept",
            "departamento",
            "area",
            "division",
        ),
    },
)

SALES_SCHEMA = DatasetSchema(
    name="POS sales",
    required_fields=("date", "branch", "total", "tips", "tax", "transaction_count"),
    aliases_by_field={
        "date": ("fecha", "date", "transaction_date", "day"),
        "branch": ("sucursal", "branch", "store", "location"),
        "total": ("total", "amount", "sales_total", "revenue"),
        "tips": ("propinas", "tips", "gratuity"),
        "tax": ("itbms", "tax", "vat", "impuesto"),
        "transaction_count": ("num_transacciones", "transactions", "count", "qty"),
    },
)

PURCHASES_SCHEMA = DatasetSchema(
    name="Purchases",
    required_fields=("supplier", "invoice_number", "date", "subtotal", "tax", "total"),
    aliases_by_field={
        "supplier": ("proveedor", "supplier", "vendor", "provider"),
        "invoice_number": ("factura", "invoice", "bill", "document"),
        "date": ("fecha", "date", "invoice_date", "purchase_date"),
        "subtotal": ("subtotal", "subtotal_amount", "net_amount"),
        "tax": ("itbms", "tax", "vat", "impuesto"),
        "total": ("total", "total_amount", "gross_amount"),
    },
)

SCHEMA_REGISTRY: Mapping[DatasetKind, DatasetSchema] = MappingProxyType(
    {
        DatasetKind.ROSTER: ROSTER_SCHEMA,
        DatasetKind.ATTENDANCE: ATTENDANCE_SCHEMA,
        DatasetKind.PAYROLL_LINES: PAYROLL_LINES_SCHEMA,
        DatasetKind.SALES: SALES_SCHEMA,
        DatasetKind.PURCHASES: PURCHASES_SCHEMA,
    }
)


def get_schema(kind: DatasetKind | str) -> DatasetSchema:
    """Look up a schema by kind. Raises KeyError for unknown kinds."""
    try:
        return SCHEMA_REGISTRY[DatasetKind(kind)]
    except ValueError:
        raise KeyError(f"Unknown dataset kind: {kind!r}") from None
