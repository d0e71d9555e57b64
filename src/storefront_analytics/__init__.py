"""
Page-view analytics for the storefront.

Usage:
    from storefront_analytics import setup_analytics

    analytics = setup_analytics(
        kv_rest_url="https://your-db.upstash.io",
        kv_rest_token="your-token",
        passkey="pbkdf2:...",
    )

    # Track endpoint, admin summary endpoint, login/logout
    app.include_router(analytics.router, prefix="/analytics")

    # In templates: {{ analytics.tracking_script("/analytics/track") }}
"""

from .config import AnalyticsConfig
from .geo import CountryResolver
from .models import AnalyticsSummary, PageView, PageViewInput
from .recorder import EventRecorder
from .reporter import AnalyticsReporter
from .routes import create_analytics_router
from .sessions import AdminSessions
from .store import KeyValueStore, MemoryStore, RestKeyValueStore, StoreError

__version__ = "0.1.0"
__all__ = [
    "setup_analytics",
    "Analytics",
    "AnalyticsConfig",
    "AnalyticsReporter",
    "AnalyticsSummary",
    "CountryResolver",
    "EventRecorder",
    "KeyValueStore",
    "MemoryStore",
    "PageView",
    "PageViewInput",
    "RestKeyValueStore",
    "StoreError",
]


class Analytics:
    """Main analytics interface: recorder, reporter and HTTP routes sharing one store."""

    def __init__(
        self,
        config: AnalyticsConfig,
        store: KeyValueStore | None = None,
        resolver: CountryResolver | None = None,
    ):
        self.config = config
        self.store = store or RestKeyValueStore(config.kv_rest_url, config.kv_rest_token)
        self.resolver = resolver or CountryResolver(timeout=config.geo_timeout_seconds)
        self.recorder = EventRecorder(self.store, self.resolver)
        self.reporter = AnalyticsReporter(self.store, top_n=config.top_n)
        self.sessions = AdminSessions(self.store, ttl_seconds=config.session_ttl_seconds)
        self.router = create_analytics_router(
            config, self.recorder, self.reporter, self.sessions
        )

    async def record_page_view(self, event) -> PageView | None:
        return await self.recorder.record_page_view(event)

    async def get_analytics(self, days: int | None = None) -> AnalyticsSummary:
        return await self.reporter.get_analytics(self.config.default_days if days is None else days)

    def tracking_script(self, track_url: str = "/analytics/track") -> str:
        """Generate the tracking script HTML for templates.

        - Tracks the initial pageload and SPA navigation (pushState, popstate)
        - Keeps a per-browser session id in localStorage for visitor counts
        - Sends the logged-in user's id when one is stored under "user"
        """
        return f'''<script>
(function(){{
  var d=document,w=window,h=history,l=location,s=w.localStorage;
  var url="{track_url}";
  var lastPath="",timer;

  function sessionId(){{
    try{{
      var id=s.getItem("analytics_session");
      if(!id){{
        id="session_"+Date.now()+"_"+Math.random().toString(36).substr(2,9);
        s.setItem("analytics_session",id);
      }}
      return id;
    }}catch(e){{return ""}}
  }}

  function userId(){{
    try{{var u=s.getItem("user");return u?(JSON.parse(u).id||""):""}}catch(e){{return ""}}
  }}

  function track(){{
    clearTimeout(timer);
    timer=setTimeout(function(){{
      var path=l.pathname||"/";
      if(path===lastPath)return;
      lastPath=path;
      fetch(url,{{
        method:"POST",
        headers:{{"Content-Type":"application/json"}},
        keepalive:true,
        body:JSON.stringify({{
          path:path,
          userAgent:navigator.userAgent||"",
          referrer:d.referrer||"",
          sessionId:sessionId(),
          userId:userId()
        }})
      }}).catch(function(){{}});
    }},50);
  }}

  track();

  var push=h.pushState;
  h.pushState=function(){{push.apply(h,arguments);track()}};
  w.addEventListener("popstate",track);
}})();
</script>'''


def setup_analytics(
    kv_rest_url: str,
    kv_rest_token: str,
    passkey: str | None = None,
    store: KeyValueStore | None = None,
    **options,
) -> Analytics:
    """
    Set up analytics for the storefront.

    Args:
        kv_rest_url: Upstash-compatible REST URL (KV_REST_API_URL)
        kv_rest_token: REST API token (KV_REST_API_TOKEN)
        passkey: Admin passkey protecting /api/analytics. Preferably a
                 hash_passkey() value.
        store: Use this store instead of the REST one (e.g. MemoryStore)
        **options: Any other AnalyticsConfig field

    Returns:
        Analytics instance with router, recorder, reporter and tracking_script()
    """
    config = AnalyticsConfig(
        kv_rest_url=kv_rest_url,
        kv_rest_token=kv_rest_token,
        passkey=passkey,
        **options,
    )
    return Analytics(config, store=store)
