"""
Error taxonomy for the generation pipeline.

  ConfigurationError    unsatisfiable request; rejected before any job exists
  ExtractionError       unreadable source; caller must re-upload
  MaterialNotFoundError unknown material id
  JobNotFoundError      unknown job id
  JobStateError         transition requested from the wrong status
  GenerationUnitError   one work unit failed; logged, counted, skipped
  PersistenceError      storage write failed; fatal for the job
"""


class GenerationError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(GenerationError):
    pass


class ExtractionError(GenerationError):
    pass


class MaterialNotFoundError(GenerationError):
    def __init__(self, material_id: int):
        super().__init__(f"Material {material_id} not found")
        self.material_id = material_id


class JobNotFoundError(GenerationError):
    def __init__(self, job_id: int):
        super().__init__(f"Generation job {job_id} not found")
        self.job_id = job_id


class JobStateError(GenerationError):
    def __init__(self, job_id: int, status: str, action: str):
        super().__init__(f"Cannot {action} job {job_id}: status is {status}")
        self.job_id = job_id
        self.status = status
        self.action = action


class GenerationUnitError(GenerationError):
    def __init__(self, unit_label: str, reason: str):
        super().__init__(f"{unit_label}: {reason}")
        self.unit_label = unit_label
        self.reason = reason


class PersistenceError(GenerationError):
    pass
