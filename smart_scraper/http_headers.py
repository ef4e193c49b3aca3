DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SmartScraper/1.0; +https://github.com/smart-scraper/smart-scraper)"

# Sent with every direct fetch; User-Agent is filled in from the active config.
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

PDF_HEADERS = {
    "Accept": "application/pdf,*/*",
}
