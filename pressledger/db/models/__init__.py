from .job_material import ChangeType, JobMaterialEdit, JobMaterialLine  # noqa: F401
from .material import Material  # noqa: F401
from .stock_movement import MovementType, StockMovement  # noqa: F401

from . import job_material  # noqa: F401
from . import material  # noqa: F401
from . import stock_movement  # noqa: F401
