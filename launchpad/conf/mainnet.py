from launchpad.conf.settings import LaunchpadSettings

SETTINGS = LaunchpadSettings(
    NETWORK_NAME='base-mainnet',
    CHAIN_ID=8453,
    MAX_PAGE_SIZE=500,
)
