"""
Shared HTML layout and styling helpers.
"""
import html
from datetime import datetime, timezone

from fastapi.responses import HTMLResponse

NAV_LINKS = (
    ("/vehicle-check", "Vehicle check"),
    ("/dispute-letters", "Dispute letters"),
    ("/pricing", "Pricing"),
    ("/leaderboard", "Leaderboard"),
    ("/help", "Help"),
)


def esc(value) -> str:
    """HTML-escape anything for interpolation into markup; None becomes ''."""
    return html.escape("" if value is None else str(value), quote=True)


def format_dt(dt_str) -> str:
    """Render a stored ISO timestamp in server local time."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(str(dt_str))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone().strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return str(dt_str)


def message_page(title: str, message: str, back_href: str = "/", back_label: str = "Back", status_code: int = 400,
                 user: dict | None = None) -> HTMLResponse:
    body = f"""
    <div class="card form-card">
      <h2>{esc(title)}</h2>
      <p>{message}</p>
      <p class="muted"><a href="{back_href}">{esc(back_label)}</a></p>
    </div>
    """
    return render_page(title, body, user=user, status_code=status_code)


def render_page(title: str, body: str, user: dict | None = None, status_code: int = 200) -> HTMLResponse:
    """
    Shared layout: header with brand and nav, the page body, footer with policy links.
    """
    if user:
        auth_links = """
          <a href="/dashboard">Dashboard</a>
          <a href="/logout">Logout</a>
        """
        signed_in_text = f"Signed in as <strong>{esc(user.get('email'))}</strong>"
    else:
        auth_links = """
          <a href="/login">Login</a>
          <a href="/signup" class="cta">Sign up</a>
        """
        signed_in_text = "Not signed in"

    admin_links = ""
    if user and user.get("role") == "admin":
        admin_links = '<a href="/admin">Admin</a>'

    nav_html = "\n".join(f'<a href="{href}">{label}</a>' for href, label in NAV_LINKS)

    page = f"""
    <!DOCTYPE html>
    <html lang="en-GB">
      <head>
        <meta charset="utf-8" />
        <meta name="viewport" content="width=device-width, initial-scale=1" />
        <title>{esc(title)} | AutoAudit</title>
        <style>
          * {{
            box-sizing: border-box;
          }}
          body {{
            font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
            margin: 0;
            background: #f8fafc;
            color: #0f172a;
          }}
          .page {{
            max-width: 1040px;
            margin: 0 auto;
            padding: 1.25rem 1rem 3rem;
          }}
          header {{
            display: flex;
            justify-content: space-between;
            align-items: center;
            flex-wrap: wrap;
            gap: 0.75rem;
            padding: 0.75rem 1rem;
            background: #ffffff;
            border: 1px solid #e2e8f0;
            border-radius: 0.75rem;
          }}
          .brand {{
            font-size: 1.35rem;
            font-weight: 700;
            color: #2563eb;
            text-decoration: none;
          }}
          nav {{
            display: flex;
            flex-wrap: wrap;
            gap: 0.4rem;
            align-items: center;
          }}
          nav a {{
            text-decoration: none;
            color: #334155;
            font-size: 0.92rem;
            padding: 6px 10px;
            border-radius: 8px;
          }}
          nav a:hover {{
            background: #eff6ff;
            color: #1d4ed8;
          }}
          nav a.cta {{
            background: #2563eb;
            color: #ffffff;
          }}
          .signed-in {{
            font-size: 0.8rem;
            color: #64748b;
          }}
          main {{
            margin-top: 1.25rem;
          }}
          h1.page-title {{
            font-size: 1.6rem;
            margin: 0 0 1rem;
          }}
          a {{
            color: #2563eb;
          }}
          .card {{
            background: #ffffff;
            border-radius: 0.75rem;
            border: 1px solid #e2e8f0;
            padding: 1rem 1.25rem;
            margin-bottom: 1rem;
            box-shadow: 0 4px 16px rgba(15, 23, 42, 0.06);
          }}
          .form-card {{
            max-width: 760px;
            margin-left: auto;
            margin-right: auto;
          }}
          .grid {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
            gap: 1rem;
          }}
          label {{
            display: block;
            margin-top: 0.9rem;
            font-size: 0.95rem;
          }}
          input:not([type="checkbox"]):not([type="radio"]), select, textarea {{
            width: 100%;
            padding: 0.5rem;
            margin-top: 0.25rem;
            border-radius: 0.375rem;
            border: 1px solid #cbd5e1;
            background: #ffffff;
            color: #0f172a;
            font: inherit;
          }}
          textarea {{
            min-height: 6rem;
          }}
          button {{
            margin-top: 1.25rem;
            padding: 0.65rem 1.4rem;
            border-radius: 0.5rem;
            border: none;
            background: #2563eb;
            color: #ffffff;
            font-weight: 600;
            cursor: pointer;
          }}
          button:hover {{
            background: #1d4ed8;
          }}
          button.small {{
            margin-top: 0;
            padding: 0.3rem 0.7rem;
            font-size: 0.8rem;
          }}
          table {{
            width: 100%;
            border-collapse: collapse;
            margin-top: 1rem;
            font-size: 0.9rem;
          }}
          th, td {{
            border-bottom: 1px solid #e2e8f0;
            padding: 0.45rem 0.6rem;
            vertical-align: top;
            text-align: left;
          }}
          th {{
            background: #f1f5f9;
          }}
          .muted {{
            color: #64748b;
            font-size: 0.88rem;
          }}
          .error {{
            color: #dc2626;
          }}
          .ok {{
            color: #16a34a;
          }}
          .badge {{
            display: inline-block;
            padding: 2px 8px;
            border-radius: 999px;
            font-size: 0.78rem;
            background: #e2e8f0;
          }}
          .badge.good {{ background: #dcfce7; color: #166534; }}
          .badge.warn {{ background: #fef3c7; color: #92400e; }}
          .badge.bad {{ background: #fee2e2; color: #991b1b; }}
          .stats {{
            display: flex;
            gap: 0.75rem;
            margin-bottom: 1rem;
            flex-wrap: wrap;
          }}
          .stat {{
            flex: 0 0 160px;
            padding: 0.6rem 0.8rem;
            border-radius: 0.75rem;
            border: 1px solid #e2e8f0;
            background: #ffffff;
          }}
          .stat .label {{
            font-size: 0.75rem;
            color: #64748b;
          }}
          .stat .value {{
            font-size: 1.2rem;
            font-weight: 600;
          }}
          .tabs a {{
            margin-right: 0.75rem;
            text-decoration: none;
          }}
          .tabs a.active {{
            font-weight: 700;
            text-decoration: underline;
          }}
          pre.letter {{
            white-space: pre-wrap;
            font-family: Georgia, "Times New Roman", serif;
            background: #ffffff;
            border: 1px solid #e2e8f0;
            padding: 1.25rem;
            border-radius: 0.5rem;
          }}
          footer {{
            margin-top: 2.5rem;
            padding: 1.25rem 0;
            border-top: 1px solid #e2e8f0;
            font-size: 0.9rem;
            color: #475569;
            text-align: center;
          }}
          footer a {{
            margin: 0 0.4rem;
            text-decoration: none;
          }}
        </style>
      </head>
      <body>
        <div class="page">
          <header>
            <div>
              <a class="brand" href="/">AutoAudit</a>
              <div class="signed-in">{signed_in_text}</div>
            </div>
            <nav>
              {nav_html}
              {admin_links}
              {auth_links}
            </nav>
          </header>
          <main>
            <h1 class="page-title">{esc(title)}</h1>
            {body}
          </main>
          <footer>
            <div><strong>(c) 2026 AutoAudit.</strong> UK vehicle checks and PCN appeal letters.</div>
            <div>
              <a href="/privacy">Privacy</a>
              <a href="/terms">Terms</a>
              <a href="/help">Help</a>
            </div>
          </footer>
        </div>
      </body>
    </html>
    """
    return HTMLResponse(content=page, status_code=status_code)
