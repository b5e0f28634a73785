from storyexport.routers import export, proxy

__all__ = ["export", "proxy"]
