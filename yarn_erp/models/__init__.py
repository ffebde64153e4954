# Import every model so SQLAlchemy registers all tables
from yarn_erp.models.user import User
from yarn_erp.models.asu_machine import ASUMachine
from yarn_erp.models.machine_configuration import MachineConfiguration
from yarn_erp.models.production_entry import ASUProductionEntry
from yarn_erp.models.count_product import CountProduct, CountProductFollowUp
from yarn_erp.models.dyeing import DyeingFirm, DyeingRecord, DyeingFollowUp
from yarn_erp.models.party import Party
from yarn_erp.models.inventory import InventoryItem, StockLog
from yarn_erp.models.production_job import Machine, ProductionJob
from yarn_erp.models.work_order import BillOfMaterials, BOMItem, WorkOrder, Costing
from yarn_erp.models.audit_log import AuditLog
