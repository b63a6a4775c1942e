#!/usr/bin/env python3
"""
Simple script to run the Merchant Dashboard service
"""

import uvicorn

from merchant_dashboard.config import get_settings

if __name__ == "__main__":
    settings = get_settings()

    print("Starting Merchant Dashboard...")
    print(f"Server will be available at: http://{settings.host}:{settings.port}")
    print(f"API Documentation: http://{settings.host}:{settings.port}/docs")
    print(f"Merchant API: {settings.api_base_url}")
    print(f"Debug mode: {settings.debug}")
    print("-" * 50)

    uvicorn.run(
        "merchant_dashboard.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else settings.log_level.lower(),
    )
