#!/usr/bin/env python3
"""
============================================================================
WxPay Gateway Client v1.0.0
Unified Order Demo - Gateway Link Verification
============================================================================

Input Constraints: Requires .env configuration (WXPAY_APP_ID, WXPAY_MCH_ID,
                   WXPAY_APP_KEY; optional WXPAY_NOTIFY_URL, WXPAY_TRADE_TYPE)
Side Effects: One signed POST to the gateway

PURPOSE
-------
Place a unified order and print the prepay_id, or the coded error.

EXECUTION
---------
    python scripts/unified_order_demo.py --out-trade-no 1000000000000 \
        --body test --total-fee 100

============================================================================
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load environment
load_dotenv()

from wxpay import (
    GatewayError,
    SignatureError,
    WxPayClient,
    WxPayCredential,
    WxPayError,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("UNIFIED-ORDER-DEMO")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Place a WxPay unified order")
    parser.add_argument("--out-trade-no", required=True, help="Merchant order number")
    parser.add_argument("--body", required=True, help="Product description")
    parser.add_argument("--total-fee", required=True, help="Amount in cents (fen)")
    parser.add_argument("--openid", default="", help="Payer openid (JSAPI only)")
    parser.add_argument("--product-id", default="", help="Product id (NATIVE only)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Place one unified order.

    Returns:
        Process exit code (0 success, 1 gateway/validation error, 2 signature error)
    """
    args = parse_args(argv)

    print("=" * 60)
    print("WXPAY GATEWAY CLIENT - UNIFIED ORDER")
    print("=" * 60)

    try:
        credential = WxPayCredential.from_environment()
    except WxPayError as e:
        logger.error(f"Configuration failed: {e}")
        return 1

    client = WxPayClient(credential)
    params = {
        "out_trade_no": args.out_trade_no,
        "body": args.body,
        "total_fee": args.total_fee,
        "openid": args.openid,
        "product_id": args.product_id,
    }

    try:
        order = client.unified_order(params)
    except SignatureError as e:
        # Possible tampering or wrong WXPAY_APP_KEY; never use the response
        print(f"\nSIGNATURE CHECK FAILED: {e}")
        return 2
    except GatewayError as e:
        print(f"\nGateway rejected the order: {e.return_msg}")
        return 1
    except WxPayError as e:
        print(f"\nRequest failed: {e}")
        return 1

    print("-" * 60)
    print(f"   result_code: {order.result_code}")
    print(f"   prepay_id:   {order.prepay_id}")
    if order.code_url:
        print(f"   code_url:    {order.code_url}")
    if not order.is_business_success:
        print(f"   err_code:    {order.err_code} ({order.err_code_des})")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
