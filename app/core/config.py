from dotenv import load_dotenv
from pycardano import Network
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "FirmaDrop"
    # Application settings
    PORT: int = 3000
    HOST: str = "127.0.0.1"
    VERSION: str = "1.0.0"
    DOC_PASSWORD: str = ""
    LOG_LEVEL: str = "INFO"

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # Redis settings, empty host -> in-process memory store
    REDIS_HOST: str = ""
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SSL: bool = False

    # Store layout
    REQUEST_KEY_PREFIX: str = "request:"
    ADDRESSBOOK_KEY: str = "addressbook"
    REWARD_MARKER_PREFIX: str = "rewardmarker:"
    PAYOUT_QUEUE_KEY: str = "payoutqueue"
    PAYOUT_RESULT_KEY: str = "payoutresults"
    FEED_KEY_PREFIX: str = "feed:"
    NFT_KEY_PREFIX: str = "nft:"
    GALLERY_SUBMISSION_PREFIX: str = "gallery:nfts:"

    # Sign requests
    REQUEST_EXPIRE_SECONDS: int = 300 # 5 minutes
    LOGIN_MESSAGE: str = "Login"
    MINT_MESSAGE: str = "Mint NFT"
    STATION_IDENTITY: str = "station"

    # Signing relay (pairing sessions / QR payloads)
    RELAY_URL: str = ""
    RELAY_TIMEOUT_SECONDS: float = 5.0
    PROJECT_ID: str = ""
    PROJECT_SECRET_KEY: str = ""
    API_HOST: str = "http://127.0.0.1:3000"

    # IPFS
    IPFS_API_URL: str = "http://127.0.0.1:5001"
    IPFS_GATEWAY_URL: str = "https://ipfs.io/ipfs/"

    # Cardano
    CARDANO_NETWORK_NAME: str = "preprod" # mainnet | preprod
    BLOCKFROST_API_KEY: str | None = None
    AIRDROP_WALLETS_PATH: str = "wallets.yaml"
    EXPLORER_HOST: str = "https://preprod.cardanoscan.io"

    # Rewards
    MINT_REWARD_AMOUNT: str = "2"
    GALLERY_FEED_CAP: int = 8
    GALLERY_FEATURED_FEED_CAP: int = 300

    # Payout worker
    PAYOUT_WORKER_ENABLED: bool = False
    PAYOUT_IDLE_SECONDS: float = 3.0
    PAYOUT_REQUEUE_INFLIGHT_ON_START: bool = False

    # Telegram alerts
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None

    # Debug settings
    DEBUG: bool = False

    @property
    def CARDANO_NETWORK(self) -> Network:
        if self.CARDANO_NETWORK_NAME.strip().lower() == "mainnet":
            return Network.MAINNET
        return Network.TESTNET

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
