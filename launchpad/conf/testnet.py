from launchpad.conf.settings import LaunchpadSettings

SETTINGS = LaunchpadSettings(
    NETWORK_NAME='base-sepolia',
    CHAIN_ID=84532,
)
