from .aggregator import OutputAggregator, Stream
from .environment import BoundedEnvironment, JobAttribute, build_environment
from .job import Job, JobController, JobEvent, JobReason, JobState
from .outcome import Outcome, OutcomeKind
from .supervisor import CommandNotFoundError, FilterSupervisor, resolve_command
from .worker import TransformRequest, TransformWorker

__version__ = "0.2.0"
