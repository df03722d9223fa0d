from registry.services.verification import NOT_FOUND_MESSAGE, filter_directory, verify

TRAINERS = [
    {
        "id": "0190f1c2-0000-7000-8000-000000000002",
        "certification_id": "ILA-CLT-2024-0002",
        "full_name": "Omar Khalil",
        "specialties": ["Corporate Governance"],
        "status": "Renewal Due",
        "created_at": "2024-03-01T10:00:00",
    },
    {
        "id": "0190f1c2-0000-7000-8000-000000000001",
        "certification_id": "ILA-CLT-2024-0001",
        "full_name": "Layla Haddad",
        "specialties": ["Arbitration", "Contract Drafting"],
        "status": "Active",
        "created_at": "2024-02-01T10:00:00",
    },
]


def test_verify_by_certification_id_is_case_insensitive():
    result = verify("  ila-clt-2024-0001 ", TRAINERS)
    assert result.found
    assert result.trainer["full_name"] == "Layla Haddad"
    assert result.term == "ILA-CLT-2024-0001"


def test_verify_by_internal_id():
    result = verify("0190f1c2-0000-7000-8000-000000000002", TRAINERS)
    assert result.found
    assert result.trainer["certification_id"] == "ILA-CLT-2024-0002"


def test_unknown_term_is_not_found():
    result = verify("ILA-CLT-2024-0099", TRAINERS)
    assert not result.found
    assert result.trainer is None
    assert result.message == NOT_FOUND_MESSAGE


def test_empty_term_is_not_found():
    assert not verify("   ", TRAINERS).found
    assert not verify(None, TRAINERS).found


def test_duplicate_certification_id_resolves_to_earliest_record():
    later = dict(TRAINERS[1], id="later", full_name="Impostor", created_at="2024-06-01T00:00:00")
    result = verify("ILA-CLT-2024-0001", [later, TRAINERS[1]])
    assert result.trainer["full_name"] == "Layla Haddad"


def test_result_serializes_for_api():
    body = verify("ILA-CLT-2024-0002", TRAINERS).to_dict()
    assert body["found"] is True
    assert body["trainer"]["status"] == "Renewal Due"
    assert body["message"] is None


def test_directory_filters_by_name_or_specialty():
    assert [t["full_name"] for t in filter_directory(TRAINERS, "layla")] == ["Layla Haddad"]
    assert [t["full_name"] for t in filter_directory(TRAINERS, "GOVERN")] == ["Omar Khalil"]
    assert filter_directory(TRAINERS, "tax law") == []


def test_directory_without_query_lists_everyone():
    assert filter_directory(TRAINERS, "") == TRAINERS
    assert filter_directory(TRAINERS, None) == TRAINERS
