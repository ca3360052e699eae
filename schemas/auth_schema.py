from schemas.fields import EMAIL, FieldSpec, Schema

SIGNUP = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=100),
        FieldSpec("companyName", required=True, column="company_name", min_length=1, max_length=100),
        FieldSpec("email", EMAIL, required=True, max_length=255),
        FieldSpec("password", required=True, min_length=8, max_length=128, strip=False),
    )
)

LOGIN = Schema(
    fields=(
        FieldSpec("email", EMAIL, required=True, max_length=255),
        FieldSpec("password", required=True, min_length=1, max_length=128, strip=False),
    )
)

COMPANY_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=100),
        FieldSpec("domain", max_length=255),
        FieldSpec("address", max_length=500),
    )
)
