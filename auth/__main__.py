"""Issue a bearer token for an identity: python -m auth <identity>"""
import argparse

from config import get_settings
from . import TokenManager

def main():
    parser = argparse.ArgumentParser(description="Issue a market API token")
    parser.add_argument('identity', help="Principal identity the token authenticates")
    parser.add_argument('--days', type=int, help="Token lifetime in days")
    args = parser.parse_args()

    settings = get_settings()
    manager = TokenManager(settings['jwt_secret'], args.days or settings['token_expiry_days'])
    print(manager.create_token(args.identity))

if __name__ == "__main__":
    main()
