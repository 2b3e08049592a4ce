"""
Injection des balises analytiques (Google Tag, Facebook, Snapchat, TikTok) dans le <head>.

Chaque balise porte un identifiant de marqueur; un marqueur déjà injecté ne l'est jamais une
seconde fois, même si les paramètres du site sont republiés. Les identifiants vides sont ignorés.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Set

from markupsafe import Markup

from portail.site.models import AdPixels

logger = logging.getLogger(__name__)

PIXEL_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

GOOGLE_MARKER = "google-gtag"
FACEBOOK_MARKER = "facebook-pixel"
SNAPCHAT_MARKER = "snapchat-pixel"
TIKTOK_MARKER = "tiktok-pixel"

_GOOGLE = """<script id="google-gtag" async src="https://www.googletagmanager.com/gtag/js?id={pid}"></script>
<script>
window.dataLayer = window.dataLayer || [];
function gtag(){{dataLayer.push(arguments);}}
gtag('js', new Date());
gtag('config', '{pid}');
</script>"""

_FACEBOOK = """<script id="facebook-pixel">
!function(f,b,e,v,n,t,s){{if(f.fbq)return;n=f.fbq=function(){{n.callMethod?
n.callMethod.apply(n,arguments):n.queue.push(arguments)}};
if(!f._fbq)f._fbq=n;n.push=n;n.loaded=!0;n.version='2.0';
n.queue=[];t=b.createElement(e);t.async=!0;
t.src=v;s=b.getElementsByTagName(e)[0];
s.parentNode.insertBefore(t,s)}}(window, document,'script',
'https://connect.facebook.net/en_US/fbevents.js');
fbq('init', '{pid}');
fbq('track', 'PageView');
</script>"""

_SNAPCHAT = """<script id="snapchat-pixel">
(function(e,t,n){{if(e.snaptr)return;var a=e.snaptr=function()
{{a.handleRequest?a.handleRequest.apply(a,arguments):a.queue.push(arguments)}};
a.queue=[];var s='script';var r=t.createElement(s);r.async=!0;
r.src=n;var u=t.getElementsByTagName(s)[0];
u.parentNode.insertBefore(r,u);}})(window,document,
'https://sc-static.net/scevent.min.js');
snaptr('init', '{pid}');
snaptr('track', 'PAGE_VIEW');
</script>"""

_TIKTOK = """<script id="tiktok-pixel">
!function (w, d, t) {{
  w.TiktokAnalyticsObject=t;var ttq=w[t]=w[t]||[];
  ttq.methods=["page","track","identify","instances","debug","on","off","once","ready","alias","group","enableCookie","disableCookie"];
  ttq.setAndDefer=function(t,e){{t[e]=function(){{t.push([e].concat(Array.prototype.slice.call(arguments,0)))}}}};
  for(var i=0;i<ttq.methods.length;i++)ttq.setAndDefer(ttq,ttq.methods[i]);
  ttq.load=function(e,n){{var i="https://analytics.tiktok.com/i18n/pixel/events.js";ttq._i=ttq._i||{{}},ttq._i[e]=[],ttq._i[e]._u=i,ttq._t=ttq._t||{{}},ttq._t[e]=+new Date,ttq._o=ttq._o||{{}},ttq._o[e]=n||{{}};var o=d.createElement("script");o.type="text/javascript",o.async=!0,o.src=i+"?sdkid="+e+"&lib="+t;var a=d.getElementsByTagName("script")[0];a.parentNode.insertBefore(o,a)}};
  ttq.load('{pid}');
  ttq.page();
}}(window, document, 'ttq');
</script>"""

# Ordre d'injection stable
_TEMPLATES = (
    (GOOGLE_MARKER, "google_tag_id", _GOOGLE),
    (FACEBOOK_MARKER, "facebook_pixel_id", _FACEBOOK),
    (SNAPCHAT_MARKER, "snapchat_pixel_id", _SNAPCHAT),
    (TIKTOK_MARKER, "tiktok_pixel_id", _TIKTOK),
)


@dataclass(frozen=True)
class PixelSnippet:
    marker_id: str
    html: Markup


class PixelInjector:
    def __init__(self):
        self.injected: Set[str] = set()

    def inject(self, ad_pixels: Optional[AdPixels]) -> List[PixelSnippet]:
        """Retourne les balises nouvellement injectées (liste vide si rien de nouveau)."""
        if ad_pixels is None:
            return []
        added: List[PixelSnippet] = []
        for marker, attr, template in _TEMPLATES:
            pixel_id = (getattr(ad_pixels, attr, None) or "").strip()
            if not pixel_id or marker in self.injected:
                continue
            if not PIXEL_ID_RE.match(pixel_id):
                logger.warning("Identifiant de pixel ignoré (%s): format invalide", marker)
                continue
            self.injected.add(marker)
            added.append(PixelSnippet(marker, Markup(template.format(pid=pixel_id))))
        return added


def head_snippets(ad_pixels: Optional[AdPixels]) -> Markup:
    """Balises à placer dans le <head> d'une page rendue."""
    return Markup("\n").join(s.html for s in PixelInjector().inject(ad_pixels))
