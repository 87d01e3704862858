# Infrastructure clients
from clients.errors import StoreError
from clients.cache import CacheClient, MemoryCache, create_cache
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_valkey_url,
    get_jwt_secret,
    get_sms_config,
)
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.sms_client import SmsGatewayClient, SmsGatewayError
