"""
Quick demo script to run the encounter API locally.

This script starts a local server and shows how to make requests to the endpoints.
"""

import uvicorn

if __name__ == "__main__":
    print("=" * 60)
    print("Starting Trait Encounter Backend Demo")
    print("=" * 60)
    print()
    print("📌 API Endpoints:")
    print("   - Health Check:  GET  http://localhost:8000/health")
    print("   - Generate:      POST http://localhost:8000/encounter/generate")
    print("   - History:       GET  http://localhost:8000/encounter/history?category=books")
    print("   - Cached:        GET  http://localhost:8000/encounter/cached?category=books")
    print("   - Categories:    GET  http://localhost:8000/encounter/categories")
    print("   - API Docs:           http://localhost:8000/docs")
    print()
    print("🔐 Authentication:")
    print("   All endpoints (except /health) require:")
    print("   Authorization: Bearer <token>")
    print()
    print("📝 Test with curl:")
    print('   curl -X POST "http://localhost:8000/encounter/generate" \\')
    print('     -H "Authorization: Bearer <token>" \\')
    print('     -H "Content-Type: application/json" \\')
    print('     -d \'{"category": "books", "force_refresh": false}\'')
    print()
    print("=" * 60)
    print("Starting server on http://localhost:8000")
    print("Press Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(
        "encounter.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
