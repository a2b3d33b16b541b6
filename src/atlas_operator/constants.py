"""Constants for the Atlas Operator."""

# API Group
API_GROUP = "atlas.generated.mongodb.com"
API_VERSION = "v1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_GROUP = "Group"
KIND_FLEX_CLUSTER = "FlexCluster"
KIND_SECRET = "Secret"

# Controller identity
CONTROLLER_NAME = "atlas-operator"
FIELD_MANAGER = "atlas-operator"

# Finalizers
FINALIZER = "mongodb.com/finalizer"

# Annotations
ANNOTATION_EXTERNAL_PREFIX = "mongodb.com/external-"
ANNOTATION_EXTERNAL_NAME = "mongodb.com/external-name"
ANNOTATION_EXTERNAL_GROUP_ID = "mongodb.com/external-group-id"
ANNOTATION_EXTERNAL_ID = "mongodb.com/external-id"
ANNOTATION_RECONCILIATION_POLICY = "mongodb.com/atlas-reconciliation-policy"
ANNOTATION_RESOURCE_POLICY = "mongodb.com/atlas-resource-policy"
ANNOTATION_LAST_APPLIED_CONFIG = "mongodb.com/last-applied-configuration"
ANNOTATION_REAPPLY_PERIOD = "mongodb.com/reapply-period"
ANNOTATION_REAPPLY_TIMESTAMP = "mongodb.com/reapply-timestamp"
ANNOTATION_DRY_RUN_INSTANCE = "mongodb.com/dry-run-instance"

RECONCILIATION_POLICY_SKIP = "skip"
RESOURCE_POLICY_KEEP = "keep"
RESOURCE_POLICY_DELETE = "delete"

# Connection secret keys
SECRET_KEY_ORG_ID = "orgId"
SECRET_KEY_PUBLIC_API_KEY = "publicApiKey"
SECRET_KEY_PRIVATE_API_KEY = "privateApiKey"

# Condition Types
COND_READY = "Ready"
COND_STATE = "State"
COND_IP_ACCESS_LIST_READY = "IPAccessListReady"
COND_CLOUD_PROVIDER_INTEGRATION_READY = "CloudProviderIntegrationReady"
COND_NETWORK_PEER_READY = "NetworkPeerReady"
COND_INTEGRATION_READY = "IntegrationReady"
COND_MAINTENANCE_WINDOW_READY = "MaintenanceWindowReady"
COND_AUDITING_READY = "AuditingReady"
COND_PROJECT_SETTINGS_READY = "ProjectSettingsReady"
COND_ENCRYPTION_AT_REST_READY = "EncryptionAtRestReady"
COND_PROJECT_CUSTOM_ROLES_READY = "ProjectCustomRolesReady"
COND_PROJECT_TEAMS_READY = "ProjectTeamsReady"
COND_PRIVATE_ENDPOINT_READY = "PrivateEndpointReady"
COND_CLOUD_PROVIDER_ACCESS_READY = "CloudProviderAccessReady"
COND_SERVERLESS_PRIVATE_ENDPOINT_READY = "ServerlessPrivateEndpointReady"

# Condition Reasons
REASON_PENDING = "Pending"
REASON_SETTLED = "Settled"
REASON_ERROR = "Error"
REASON_RECONCILED = "Reconciled"
REASON_DELETION_PROTECTION = "AtlasDeletionProtection"

DELETION_PROTECTION_DOC_LINK = "https://dochub.mongodb.org/core/ako-deletion-protection"

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_STATE_CHANGED = "StateChanged"
EVENT_REASON_DELETION_PROTECTION = "DeletionProtection"
EVENT_REASON_DRY_RUN = "DryRun"

# Dry run
DRY_RUN_COMPONENT = "DryRun Manager"
DRY_RUN_FINISHED_MSG = "finished"

# Atlas API
ATLAS_API_PATH = "/api/atlas/v2"
ATLAS_MEDIA_TYPE = "application/vnd.atlas.{date}+json"
