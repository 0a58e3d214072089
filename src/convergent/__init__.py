"""convergent - declarative lifecycle reconciliation for AWS resources."""

from . import resources as resources
from .blueprints import Blueprint as Blueprint
from .context import Context as Context
from .errors import NotFound as NotFound
from .errors import OperationCancelled as OperationCancelled
from .errors import PartialCreate as PartialCreate
from .errors import PropagationTimeout as PropagationTimeout
from .errors import ReconcileError as ReconcileError
from .errors import RemoteError as RemoteError
from .errors import RemoteRejected as RemoteRejected
from .errors import ReplacementRequired as ReplacementRequired
from .errors import ValidationFailed as ValidationFailed
from .errors import MalformedReference as MalformedReference
from .provider import ProviderConfig as ProviderConfig
from .provider import ProviderSession as ProviderSession
from .reconciler import Reconciler as Reconciler
from .resource import ResourceType as ResourceType
from .resource import lookup as lookup
from .resource import resource as resource
from .specop import Absent as Absent
from .specop import Adopt as Adopt
from .specop import Declaration as Declaration
from .specop import Ensure as Ensure
from .specop import Present as Present
from .specop import SpecOp as SpecOp
from .stacks import Stack as Stack
from .state import ResourceState as ResourceState
from .state import StateStore as StateStore
from .workspace import Workspace as Workspace
