"""Well-known names of the objects the Manager controller reads and writes."""

from __future__ import annotations

# Singleton operator resources
DEFAULT_INSTANCE_NAME = "tigera-secure"
INSTALLATION_NAME = "default"
LICENSE_KEY_NAME = "default"
TIGERA_STATUS_NAME = "manager"

# Kinds
MANAGER_KIND = "Manager"
INSTALLATION_KIND = "Installation"
APISERVER_KIND = "APIServer"
COMPLIANCE_KIND = "Compliance"
AUTHENTICATION_KIND = "Authentication"
MANAGEMENT_CLUSTER_KIND = "ManagementCluster"
MANAGEMENT_CLUSTER_CONNECTION_KIND = "ManagementClusterConnection"
IMAGESET_KIND = "ImageSet"
TIGERA_STATUS_KIND = "TigeraStatus"
LICENSE_KEY_KIND = "LicenseKey"

# Namespaces
MANAGER_NAMESPACE = "tigera-manager"
PROMETHEUS_NAMESPACE = "tigera-prometheus"
ECK_OPERATOR_NAMESPACE = "tigera-eck-operator"

# Manager service
MANAGER_SERVICE_NAME = "tigera-manager"
MANAGER_DEPLOYMENT_NAME = "tigera-manager"
MANAGER_SERVICE_ACCOUNT = "tigera-manager"
MANAGER_PORT = 9443

# Manager TLS material
MANAGER_TLS_SECRET_NAME = "manager-tls"
MANAGER_SECRET_KEY_NAME = "key"
MANAGER_SECRET_CERT_NAME = "cert"
MANAGER_INTERNAL_TLS_SECRET_NAME = "internal-manager-tls"
TUNNEL_SECRET_NAME = "tigera-management-cluster-connection"

# Dependent service certificates
COMPLIANCE_SERVER_CERT_SECRET = "tigera-compliance-server-tls"
PACKET_CAPTURE_CERT_SECRET = "tigera-packetcapture-server-tls"
PROMETHEUS_TLS_SECRET_NAME = "calico-node-prometheus-tls"
DEX_TLS_SECRET_NAME = "tigera-dex-tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY = "tls.key"

# Log storage
ELASTICSEARCH_PUBLIC_CERT_SECRET = "tigera-secure-es-http-certs-public"
ELASTICSEARCH_MANAGER_USER_SECRET = "tigera-ee-manager-elasticsearch-access"
KIBANA_PUBLIC_CERT_SECRET = "tigera-secure-kb-http-certs-public"
ES_CLUSTER_CONFIG_MAP = "tigera-secure-elasticsearch"
ECK_LICENSE_CONFIG_MAP = "elastic-licensing"
ECK_LICENSE_LEVEL_KEY = "eck_license_level"

# Authentication
STATIC_WELL_KNOWN_JWKS_CONFIG_MAP = "tigera-known-jwks"
MANAGER_OIDC_CLIENT_ID = "tigera-manager"
OIDC_TYPE_TIGERA = "Tigera"

# Licensed features
COMPLIANCE_FEATURE = "compliance-reports"

# Certificates
OPERATOR_SIGNER_NAME = "tigera-operator-signer"
SELF_SIGNED_CERT_DAYS = 825

# Secrets watched in both the operator and manager namespaces
WATCHED_SECRETS = (
    MANAGER_TLS_SECRET_NAME,
    ELASTICSEARCH_PUBLIC_CERT_SECRET,
    ELASTICSEARCH_MANAGER_USER_SECRET,
    KIBANA_PUBLIC_CERT_SECRET,
    TUNNEL_SECRET_NAME,
    COMPLIANCE_SERVER_CERT_SECRET,
    PACKET_CAPTURE_CERT_SECRET,
    MANAGER_INTERNAL_TLS_SECRET_NAME,
    DEX_TLS_SECRET_NAME,
    PROMETHEUS_TLS_SECRET_NAME,
)
