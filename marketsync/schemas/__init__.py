"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema, ApiResponse, success_response, error_response

# Reconciliation result returned to integrators
from .reconciliation import AdditionalInfo, ReconciliationResult

# Provider DTOs
from .marketplace import (
    UserCredentials,
    AttributeSchema,
    DictValue,
    WarehouseDTO,
    ExportInfoDTO,
    ExportBatchResult,
    OrderData,
    OrderLineData,
    SupplyData,
)

# Integration settings structs
from .settings import IntegrationSettings, ImportSettings, ExportSettings
