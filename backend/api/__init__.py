from .routes_portfolio import router

__all__ = ["router"]
