from pathlib import Path

import mango_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(mango_deployment.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"

#
# Chains
#

HARDHAT = 31337
POLYGON_ZKEVM_TESTNET = 1442
POLYGON_ZKEVM = 1101

SUPPORTED_CHAIN_IDS = [HARDHAT, POLYGON_ZKEVM_TESTNET, POLYGON_ZKEVM]
PROD_CHAIN_IDS = [POLYGON_ZKEVM]

LOCAL_NETWORK_NAME = "local"

#
# Contracts
#

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "4.9.3"

# EIP1967 Admin slot - https://eips.ethereum.org/EIPS/eip-1967#admin-address
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103

DEFAULT_PROXY_ADMIN = "DefaultProxyAdmin"
PROXY_SUFFIX = "_Proxy"
IMPLEMENTATION_SUFFIX = "_Implementation"

#
# Deployment tags
#

MANGO_STAKED_TOKEN = "MangoStakedToken"
MANGO_TREASURY = "MangoTreasury"
MANGO_BOND_POOL = "MangoBondPool"
MANGO_CLOBER_EXCHANGER = "MangoCloberExchanger"
MANGO_HOST = "MangoHost"
MANGO_PUBLIC_REGISTRATION = "MangoPublicRegistration"

DEPLOYMENT_TAGS = [
    MANGO_BOND_POOL,
    MANGO_CLOBER_EXCHANGER,
    MANGO_HOST,
    MANGO_PUBLIC_REGISTRATION,
    MANGO_STAKED_TOKEN,
    MANGO_TREASURY,
]

CLOBER_MANGO_USDC_EXCHANGER = "CloberMangoUSDCExchanger"

# registry names of the contracts deployed behind a proxy
PROXIED_CONTRACTS = [
    MANGO_STAKED_TOKEN,
    MANGO_TREASURY,
    CLOBER_MANGO_USDC_EXCHANGER,
    MANGO_BOND_POOL,
    MANGO_HOST,
    MANGO_PUBLIC_REGISTRATION,
]
