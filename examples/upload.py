import http.client
import sys
from urllib.parse import urlsplit

from formcontent import Form


def main() -> None:
    url = sys.argv[1] if len(sys.argv) > 1 else "http://httpbin.org/post"
    paths = sys.argv[2:]

    form = Form()
    for index, path in enumerate(paths):
        form.add_file(f"file{index}", path)
    form.add_field("source", "formcontent example")

    with form.finalize() as submission:
        print("Content-Type:", submission.content_type)
        print("Content-Length:", submission.content_length)

        parts = urlsplit(url)
        conn = http.client.HTTPConnection(parts.netloc, timeout=30)
        try:
            conn.request("POST", parts.path or "/", body=submission.content, headers=submission.headers)
            response = conn.getresponse()
            print("Upload status:", response.status)
            print(response.read().decode("utf-8", errors="replace")[:500])
        finally:
            conn.close()


if __name__ == "__main__":
    main()
