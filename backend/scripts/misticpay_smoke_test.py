from dotenv import load_dotenv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

load_dotenv(".env")

import asyncio
import time

from novaera.core.settings import Settings
from novaera.services.misticpay import MisticPayClient


async def main() -> None:
    # Settings are re-read here so values loaded from .env are picked up.
    cfg = Settings()
    if not cfg.misticpay_configured:
        print("MISTICPAY_CLIENT_ID / MISTICPAY_CLIENT_SECRET are not set")
        return

    client = MisticPayClient(
        client_id=cfg.misticpay_client_id or "",
        client_secret=cfg.misticpay_client_secret or "",
        base_url=cfg.misticpay_api_url,
        timeout_s=cfg.misticpay_timeout_s,
    )
    try:
        print("balance:", await client.get_balance())
        if "--charge" in sys.argv:
            charge = await client.create_transaction(
                amount=1.0,
                payer_name=cfg.default_payer_name,
                payer_document="00000000000",
                transaction_id=f"smoke_{int(time.time() * 1000)}",
                description="Smoke test",
            )
            print("charge:", charge.transaction_id, charge.state, charge.copy_paste[:40])
            status = await client.check_transaction(charge.transaction_id)
            print("status:", status.status)
    finally:
        await client.aclose()


asyncio.run(main())
