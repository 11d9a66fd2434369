from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    TENANT = "TENANT"


class CalculationMethod(str, Enum):
    FIXED_PER_UNIT = "FixedPerUnit"
    BY_SQM = "BySqm"
    MANUAL_PER_UNIT = "ManualPerUnit"


class UnitChargeStatus(str, Enum):
    PENDING = "Pending"
    PARTIALLY_PAID = "PartiallyPaid"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class ManualPaymentMethod(str, Enum):
    BANK_TRANSFER = "BankTransfer"
    CASH = "Cash"
    CHECK = "Check"
    MANUAL = "Manual"


class LedgerEntryType(str, Enum):
    CHARGE = "Charge"
    PAYMENT = "Payment"
    ADJUSTMENT = "Adjustment"
    EXPENSE = "Expense"


class ExpenseCategory(str, Enum):
    CLEANING = "Cleaning"
    GARDENING = "Gardening"
    ELECTRICITY = "Electricity"
    ELEVATOR_MAINTENANCE = "ElevatorMaintenance"
    WATER_PUMPS = "WaterPumps"
    FIRE_SYSTEMS = "FireSystems"
    PEST_CONTROL = "PestControl"
    INSURANCE = "Insurance"
    BANK_FEES = "BankFees"
    REPAIRS = "Repairs"
    PROJECTS = "Projects"
    OTHER = "Other"


class CollectionRowStatus(str, Enum):
    PAID = "Paid"
    PARTIAL = "Partial"
    UNPAID = "Unpaid"
    OVERDUE = "Overdue"
    NOT_GENERATED = "NotGenerated"
