"""Constants for the Kube User Operator."""

# API Group
API_GROUP = "access.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_USER = "User"
KIND_KUBECONFIG = "Kubeconfig"
KIND_KUBECONFIG_SYNC = "KubeconfigSync"
KIND_SECRET = "Secret"
KIND_SERVICE_ACCOUNT = "ServiceAccount"
KIND_ROLE_BINDING = "RoleBinding"
KIND_CLUSTER_ROLE_BINDING = "ClusterRoleBinding"

# Plurals
PLURAL_USERS = "users"
PLURAL_KUBECONFIGS = "kubeconfigs"
PLURAL_KUBECONFIG_SYNCS = "kubeconfigsyncs"

# Set ids used to key generated object sets per handler
SET_ID_USER = "user"
SET_ID_SECRET = "secret"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"
LABEL_SET_HASH = f"{API_GROUP}/set-hash"

# Annotations
ANNOTATION_SET_ID = f"{API_GROUP}/set-id"
ANNOTATION_OWNER_KIND = f"{API_GROUP}/owner-kind"
ANNOTATION_OWNER_NAME = f"{API_GROUP}/owner-name"
ANNOTATION_OWNER_NAMESPACE = f"{API_GROUP}/owner-namespace"
ANNOTATION_APPLIED_HASH = f"{API_GROUP}/applied-hash"
ANNOTATION_USER = f"{API_GROUP}/user"
ANNOTATION_SYNC_TRIGGER = f"{API_GROUP}/sync-trigger"

# Kubernetes well-known values
SECRET_TYPE_SA_TOKEN = "kubernetes.io/service-account-token"
ANNOTATION_SA_NAME = "kubernetes.io/service-account.name"
ANNOTATION_SA_UID = "kubernetes.io/service-account.uid"
RBAC_API_GROUP = "rbac.authorization.k8s.io"

# Cluster minor version from which token secrets are no longer auto-created
TOKEN_SECRET_MIN_MINOR_VERSION = 24

# Prefix for generated binding names
NAME_PREFIX = "kube-user"

# Variable listing mirror-owned secrets in a secret store scope
MANAGED_SECRETS_VARIABLE = "KUBE_USER_OPERATOR_MANAGED_SECRETS"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

CONTROLLER_NAME = "kube-user-operator"

# Condition Types
COND_READY = "Ready"

# Condition Reasons
REASON_READY = "Ready"
REASON_NOT_READY = "NotReady"
REASON_DISABLED = "Disabled"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_APPLY_FAILED = "ApplyFailed"
REASON_RECONCILE_FAILED = "ReconcileFailed"

# Mirror outcomes
OUTCOME_WRITTEN = "Written"
OUTCOME_SKIPPED = "Skipped"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_KUBECONFIG_GENERATED = "KubeconfigGenerated"
EVENT_REASON_SECRET_MIRRORED = "SecretMirrored"
EVENT_REASON_SECRET_SKIPPED = "SecretSkipped"
EVENT_REASON_SECRET_REMOVED = "SecretRemoved"
